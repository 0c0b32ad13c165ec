"""End-to-end tests for VVCAgent — inbound messages flowing into the round cycle."""

from unittest.mock import MagicMock

from vvc.agent import VVCAgent
from vvc.config import VVCConfig
from vvc.devices import DeviceManager, SimulatedDevice
from vvc.peers import PeerRecord
from vvc.protocol.router import MessageRouter
from vvc.round import RoundState
from vvc.scheduler import Scheduler, TimerHandle

CMD = "AIN/Reactive_Pwr_cmd"
MEAS = "AOUT/Active_Pwr_Fb"
COORDINATOR = "master.example:5001"


class _IdleScheduler(Scheduler):
    def __init__(self):
        self.calls = []
        self.timers = 0

    def allocate_timer(self, module):
        self.timers += 1
        return TimerHandle(module, self.timers)

    def schedule(self, target, callback, delay=None):
        self.calls.append((target, callback, delay))

    def time_remaining(self):
        return 10.0


def _make_agent(reading=12.0, floor=-10.0, **overrides):
    config = VVCConfig(uuid="slave-1", coordinator=COORDINATOR, validity_floor=floor, **overrides)
    devices = DeviceManager()
    for i in (1, 2, 3):
        devices.add(SimulatedDevice(f"sst{i}", f"SST{i}"))
    devices.get("sst1").set_state(MEAS, reading)
    transport = MagicMock()
    transport.send.return_value = True
    agent = VVCAgent(config, _IdleScheduler(), devices, transport)
    return agent, devices, transport


def _coordinator_sends(transport):
    return [c.args[1] for c in transport.send.call_args_list if c.args[0] == COORDINATOR]


class TestInbound:
    def test_gradient_message_fills_mailbox(self):
        agent, _, _ = _make_agent()
        envelope = MessageRouter("leader").gradient([0.5, 1.0, 1.5]).to_dict()
        assert agent.handle_incoming(envelope, "leader") is True
        latest = agent.mailbox.take_latest()
        assert latest.values == (0.5, 1.0, 1.5)
        assert latest.source == "leader"

    def test_peer_list_updates_directory(self):
        agent, _, _ = _make_agent()
        peers = [PeerRecord("leader", "10.0.0.1:51870"), PeerRecord("slave-1", "10.0.0.2:51870")]
        agent.handle_incoming(MessageRouter("leader").peer_list(peers).to_dict(), "leader")
        assert agent.peers.leader() == "leader"
        assert {p.identifier for p in agent.peers.snapshot()} == {"leader", "slave-1"}

    def test_advisory_messages_do_not_change_state(self):
        agent, _, _ = _make_agent()
        router = MessageRouter("peer-2")
        assert agent.handle_incoming(router.voltage_delta(2, 3.0, "x").to_dict(), "peer-2") is True
        assert agent.handle_incoming(router.line_readings([1.0, 2.0]).to_dict(), "peer-2") is True
        assert agent.mailbox.take_latest() is None
        assert len(agent.peers) == 0

    def test_unknown_variant_dropped(self):
        agent, _, _ = _make_agent()
        assert agent.handle_incoming({"category": "volt_var", "variant": "tap"}, "peer") is False


class TestEndToEnd:
    def test_published_gradient_applied_next_round(self):
        agent, devices, _ = _make_agent()
        agent.handle_incoming(MessageRouter("leader").gradient([0.5, 1.0, 1.5]).to_dict(), "leader")
        agent.controller.vvc_manage(None)
        assert devices.get("sst1").last_command == (CMD, 0.5)
        assert devices.get("sst2").last_command == (CMD, 1.0)
        assert devices.get("sst3").last_command == (CMD, 1.5)

    def test_reading_below_floor_sends_no_report(self):
        agent, _, transport = _make_agent(reading=-20.0, floor=-10.0)
        agent.controller.vvc_manage(None)
        assert _coordinator_sends(transport) == []

    def test_valid_reading_reported_to_coordinator(self):
        agent, _, transport = _make_agent(reading=12.0)
        agent.controller.vvc_manage(None)
        [envelope] = _coordinator_sends(transport)
        assert envelope.variant == "gradient"
        assert envelope.source == "slave-1"

    def test_broadcast_reaches_announced_peers(self):
        agent, _, transport = _make_agent()
        peers = [PeerRecord("leader", "10.0.0.1:51870"), PeerRecord("peer-3", "10.0.0.3:51870")]
        agent.handle_incoming(MessageRouter("leader").peer_list(peers).to_dict(), "leader")
        agent.controller.vvc_manage(None)
        addresses = [c.args[0] for c in transport.send.call_args_list if c.args[1].variant == "voltage_delta"]
        assert sorted(addresses) == ["10.0.0.1:51870", "10.0.0.3:51870"]


class TestRun:
    def test_run_starts_controller(self):
        agent, _, _ = _make_agent()
        agent.run()
        assert agent.controller.state is RoundState.AWAITING_FIRST_ROUND

    def test_status(self):
        agent, _, _ = _make_agent()
        agent.handle_incoming(MessageRouter("leader").gradient([1.0, 2.0, 3.0]).to_dict(), "leader")
        agent.controller.vvc_manage(None)
        status = agent.get_status()
        assert status["rounds_run"] == 1
        assert status["gradients_received"] == 1
        assert status["last_commands"] == [1.0, 2.0, 3.0]

    def test_staleness_limit_from_config(self):
        agent, _, _ = _make_agent(max_gradient_age_s=15.0)
        assert agent.mailbox.max_age_s == 15.0
