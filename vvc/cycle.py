"""ControlCycle — the work a slave node does once per round.

Order of operations:

  1. Broadcast a VoltageDelta advisory to every known peer.
  2. Read the aggregate device totals (generation, storage, load, gateway).
  3. Read the local point power measurement.
  4. Report it to the coordinator as a gradient-slot vector, unless the
     reading is missing or not above the validity floor.
  5. Take the latest coordinator gradient (all zeros before the first one).
  6. Command each actuator slot with its gradient component.

A failure on one actuator slot never stops the remaining slots.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from vvc.config import VVCConfig
from vvc.mailbox import GradientMailbox, GradientVector
from vvc.peers import PeerDirectory
from vvc.protocol.router import MessageRouter
from vvc.telemetry import TelemetryBridge
from vvc.transport import PeerTransport

logger = logging.getLogger("OpenVVC.ControlCycle")


@dataclass
class DeviceReadings:
    """Aggregate device totals read at the start of a round."""

    generation: float = 0.0
    storage: float = 0.0
    load: float = 0.0
    gateway: float = 0.0

    @property
    def net_generation(self) -> float:
        return self.generation + self.storage - self.load


@dataclass
class CycleResult:
    """What one control cycle did (for status reporting and tests)."""

    peers_notified: int = 0
    reading: Optional[float] = None
    report_sent: bool = False
    gradient_used: bool = False
    commands: Tuple[float, ...] = ()
    slots_applied: List[int] = field(default_factory=list)
    slots_failed: List[int] = field(default_factory=list)
    slots_skipped: List[int] = field(default_factory=list)
    duration_s: float = 0.0


class ControlCycle:
    """Ties sensing, peer broadcast, gradient application and actuation together."""

    def __init__(
        self,
        config: VVCConfig,
        peers: PeerDirectory,
        telemetry: TelemetryBridge,
        router: MessageRouter,
        mailbox: GradientMailbox,
        transport: PeerTransport,
    ):
        self.config = config
        self._peers = peers
        self._telemetry = telemetry
        self._router = router
        self._mailbox = mailbox
        self._transport = transport
        self.last_readings = DeviceReadings()
        self.last_result: Optional[CycleResult] = None
        self.cycles_run = 0

    def run(self) -> CycleResult:
        """Run one full cycle and return what happened."""
        started = time.monotonic()
        result = CycleResult()

        result.peers_notified = self.broadcast()
        self.last_readings = self.read_devices()

        result.reading = self._telemetry.read_single(
            self.config.measurement_device, self.config.measurement_signal
        )
        result.report_sent = self.report(result.reading)

        gradient = self._mailbox.take_latest()
        result.gradient_used = gradient is not None
        commands = self.command_vector(gradient)
        result.commands = tuple(float(c) for c in commands)

        outcomes = {"applied": result.slots_applied, "skipped": result.slots_skipped, "failed": result.slots_failed}
        for slot in range(len(self.config.actuator_slots)):
            outcomes[self._actuate_slot(slot, float(commands[slot]))].append(slot)

        result.duration_s = time.monotonic() - started
        self.last_result = result
        self.cycles_run += 1
        logger.debug(
            f"Cycle {self.cycles_run}: peers={result.peers_notified} reading={result.reading} "
            f"report={'sent' if result.report_sent else 'suppressed'} commands={result.commands}"
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def broadcast(self) -> int:
        """Send the VoltageDelta advisory to every peer in a directory snapshot."""
        sent = 0
        for peer in self._peers.snapshot():
            message = self._router.voltage_delta(
                self.config.control_factor,
                self.config.phase_measurement,
                self.config.reading_location,
            )
            if self._transport.send(peer.address, message):
                sent += 1
        return sent

    def read_devices(self) -> DeviceReadings:
        readings = DeviceReadings()
        for name, (device_type, signal) in self.config.readings.items():
            if hasattr(readings, name):
                setattr(readings, name, self._telemetry.read_aggregate(device_type, signal))
        return readings

    def report(self, reading: Optional[float]) -> bool:
        """Send *reading* to the coordinator if it clears the validity floor."""
        if reading is None or not reading > self.config.validity_floor:
            logger.info(
                f"Real power reading {reading} not above floor {self.config.validity_floor}; "
                "not sent to coordinator"
            )
            return False

        # One column entry per actuator slot, all seeded from the local reading.
        vector = np.full(len(self.config.actuator_slots), reading, dtype=float)
        message = self._router.gradient(vector.tolist())
        return self._transport.send(self.config.coordinator, message)

    def command_vector(self, gradient: Optional[GradientVector]) -> np.ndarray:
        """Per-slot commands from *gradient*; zeros where it has no component."""
        slots = len(self.config.actuator_slots)
        commands = np.zeros(slots, dtype=float)
        if gradient is None:
            logger.info("Gradient not received; keeping neutral setting for actuators")
            return commands

        count = min(slots, len(gradient))
        commands[:count] = gradient.values[:count]
        if len(gradient) != slots:
            logger.debug(f"Gradient has {len(gradient)} component(s) for {slots} slot(s)")
        return commands

    def _actuate_slot(self, slot: int, value: float) -> str:
        """Command one slot; returns "applied", "skipped" (no device) or "failed"."""
        device_type = self.config.actuator_slots[slot]
        try:
            applied = self._telemetry.apply_command(device_type, self.config.command_signal, value)
        except Exception as exc:
            logger.warning(f"Slot {slot + 1} ({device_type}) command failed: {exc}")
            return "failed"
        if applied:
            return "applied"
        if not self._telemetry.devices_of_type(device_type):
            return "skipped"
        return "failed"
