"""Tests for PeerDirectory — wholesale replacement, leader tracking, snapshots."""

import threading

from vvc.peers import PeerDirectory, PeerRecord


def _records(*ids):
    return [PeerRecord(identifier=i, address=f"10.0.0.{n}:51870") for n, i in enumerate(ids, start=1)]


class TestMembershipUpdate:
    def test_empty_before_any_update(self):
        directory = PeerDirectory()
        assert directory.snapshot() == []
        assert directory.leader() is None

    def test_update_sets_peers_and_leader(self):
        directory = PeerDirectory()
        directory.apply_membership_update(_records("a", "b"), "a")
        assert {p.identifier for p in directory.snapshot()} == {"a", "b"}
        assert directory.leader() == "a"

    def test_update_replaces_previous_set(self):
        directory = PeerDirectory()
        directory.apply_membership_update(_records("a", "b", "c"), "a")
        directory.apply_membership_update(_records("d"), "d")
        assert [p.identifier for p in directory.snapshot()] == ["d"]

    def test_sequence_of_updates_leaves_no_residue(self):
        directory = PeerDirectory()
        updates = [("a", "b"), ("b", "c", "d"), (), ("e",), ("a", "e")]
        for ids in updates:
            directory.apply_membership_update(_records(*ids), ids[0] if ids else "x")
            assert {p.identifier for p in directory.snapshot()} == set(ids)

    def test_leader_is_most_recent_sender(self):
        directory = PeerDirectory()
        directory.apply_membership_update(_records("a", "b"), "a")
        directory.apply_membership_update(_records("a", "b"), "b")
        assert directory.leader() == "b"

    def test_only_sender_flagged_as_leader(self):
        directory = PeerDirectory()
        directory.apply_membership_update(_records("a", "b", "c"), "b")
        leaders = [p.identifier for p in directory.snapshot() if p.is_leader]
        assert leaders == ["b"]

    def test_leader_flag_cleared_on_next_update(self):
        directory = PeerDirectory()
        directory.apply_membership_update(_records("a", "b"), "a")
        directory.apply_membership_update(_records("a", "b"), "b")
        assert directory.get("a").is_leader is False
        assert directory.get("b").is_leader is True

    def test_update_count(self):
        directory = PeerDirectory()
        directory.apply_membership_update(_records("a"), "a")
        directory.apply_membership_update(_records("a"), "a")
        assert directory.update_count == 2


class TestSnapshot:
    def test_snapshot_is_a_copy(self):
        directory = PeerDirectory()
        directory.apply_membership_update(_records("a"), "a")
        snap = directory.snapshot()
        snap.clear()
        assert len(directory) == 1

    def test_snapshot_unaffected_by_later_update(self):
        directory = PeerDirectory()
        directory.apply_membership_update(_records("a", "b"), "a")
        snap = directory.snapshot()
        directory.apply_membership_update(_records("z"), "z")
        assert {p.identifier for p in snap} == {"a", "b"}

    def test_concurrent_updates_and_snapshots(self):
        directory = PeerDirectory()
        errors = []
        sets = [("a", "b"), ("c",), ("d", "e", "f")]

        def writer():
            try:
                for i in range(300):
                    ids = sets[i % len(sets)]
                    directory.apply_membership_update(_records(*ids), ids[0])
            except Exception as exc:
                errors.append(exc)

        def reader():
            try:
                for _ in range(300):
                    ids = {p.identifier for p in directory.snapshot()}
                    if ids and ids not in [set(s) for s in sets]:
                        errors.append(AssertionError(f"mixed snapshot {ids}"))
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=writer) for _ in range(2)]
        threads += [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []


class TestPeerRecord:
    def test_dict_round_trip(self):
        record = PeerRecord(identifier="node-7", address="host:5001")
        assert PeerRecord.from_dict(record.to_dict()) == record
