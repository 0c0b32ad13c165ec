"""VVCAgent — wires the Volt/VAR slave together and handles inbound messages.

Inbound handlers run on the transport thread:

    VoltageDelta  -> logged (advisory only)
    LineReadings  -> logged (advisory only)
    Gradient      -> published into the GradientMailbox
    PeerList      -> replaces the PeerDirectory, sender becomes leader
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from vvc.config import VVCConfig
from vvc.cycle import ControlCycle
from vvc.devices import DeviceManager
from vvc.mailbox import GradientMailbox, GradientVector
from vvc.peers import PeerDirectory
from vvc.protocol.message import GradientMessage, LineReadingsMessage, PeerListMessage, VoltageDeltaMessage
from vvc.protocol.router import MessageRouter
from vvc.round import RoundController
from vvc.scheduler import Scheduler
from vvc.telemetry import TelemetryBridge
from vvc.transport import PeerTransport

logger = logging.getLogger("OpenVVC.Agent")


class VVCAgent:
    """One Volt/VAR slave agent.

    All collaborators are passed in; nothing is looked up globally.
    """

    MODULE = "vvc"

    def __init__(
        self,
        config: VVCConfig,
        scheduler: Scheduler,
        devices: DeviceManager,
        transport: PeerTransport,
        peers: Optional[PeerDirectory] = None,
        mailbox: Optional[GradientMailbox] = None,
    ):
        self.config = config
        self.peers = peers if peers is not None else PeerDirectory()
        self.mailbox = mailbox if mailbox is not None else GradientMailbox(config.max_gradient_age_s)
        self.telemetry = TelemetryBridge(devices, config.request_timeout_s)
        self.transport = transport

        self.router = MessageRouter(config.uuid, module=self.MODULE)
        self.router.register_handler(VoltageDeltaMessage, self.handle_voltage_delta)
        self.router.register_handler(LineReadingsMessage, self.handle_line_readings)
        self.router.register_handler(GradientMessage, self.handle_gradient)
        self.router.register_handler(PeerListMessage, self.handle_peer_list)

        self.cycle = ControlCycle(config, self.peers, self.telemetry, self.router, self.mailbox, transport)
        self.controller = RoundController(scheduler, self.cycle, config.round_time_s, module=self.MODULE)

    def run(self) -> None:
        """Start the round loop."""
        logger.info(
            f"VVC agent {self.config.uuid} starting: round={self.config.round_time_ms} ms, "
            f"coordinator={self.config.coordinator}, slots={self.config.actuator_slots}"
        )
        self.controller.start()

    def handle_incoming(self, data: Dict[str, Any], sender: str) -> bool:
        """Transport entry point for envelopes addressed to this module."""
        return self.router.route(data, sender)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def handle_voltage_delta(self, message: VoltageDeltaMessage, sender: str) -> None:
        logger.info(
            f"Got VoltageDelta from {sender}: CF {message.control_factor} "
            f"Phase {message.phase_measurement} at {message.reading_location!r}"
        )

    def handle_line_readings(self, message: LineReadingsMessage, sender: str) -> None:
        logger.info(f"Got Line Readings from {sender}: {len(message.measurements)} value(s)")

    def handle_gradient(self, message: GradientMessage, sender: str) -> None:
        logger.info(f"Got Gradients from {sender}: size of vector {len(message.values)}")
        self.mailbox.publish(GradientVector.of(message.values, message.capture_time, source=sender))

    def handle_peer_list(self, message: PeerListMessage, sender: str) -> None:
        logger.info(f"Updated Peer List Received from: {sender}")
        self.peers.apply_membership_update(message.peers, sender)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> dict:
        last = self.cycle.last_result
        return {
            "uuid": self.config.uuid,
            "state": self.controller.state.value,
            "rounds_run": self.controller.rounds_run,
            "peers": len(self.peers),
            "leader": self.peers.leader(),
            "gradients_received": self.mailbox.publish_count,
            "last_commands": list(last.commands) if last else [],
            "net_generation": self.cycle.last_readings.net_generation,
        }
