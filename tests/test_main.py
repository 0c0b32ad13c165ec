"""Tests for the vvc.main entry point."""

from unittest.mock import patch

from vvc.main import main


class TestMain:
    def test_missing_config_exits_2(self, tmp_path):
        assert main(["--config", str(tmp_path / "nope.yaml")]) == 2

    def test_scheduler_fault_exits_1(self, tmp_path):
        path = tmp_path / "vvc.yaml"
        path.write_text("node:\n  uuid: slave-1\n  listen: 127.0.0.1:0\n")
        with patch("vvc.main.ThreadedScheduler.join", side_effect=RuntimeError("clock fault")):
            assert main(["--config", str(path)]) == 1

    def test_incomplete_readings_exit_2(self, tmp_path):
        path = tmp_path / "vvc.yaml"
        path.write_text("vvc:\n  readings:\n    generation:\n      device_type: Drer\n")
        assert main(["--config", str(path)]) == 2

    def test_bad_advisory_exit_2(self, tmp_path):
        path = tmp_path / "vvc.yaml"
        path.write_text("vvc:\n  advisory: {control_factor: lots}\n")
        assert main(["--config", str(path)]) == 2
