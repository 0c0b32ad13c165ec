"""
OpenVVC TelemetryBridge -- sensor reads and actuator commands for a round.

Thin layer over :class:`~vvc.devices.DeviceManager` that turns device-layer
conditions into log lines instead of exceptions:

  - a device type with no registered devices is a normal deployment state
    (the read returns nothing, the command is skipped);
  - a device that faults while being commanded is logged and skipped, and
    the remaining devices of that type are still commanded.

Device calls block for as long as the device layer takes; there are no
retries here.  A call that takes longer than ``request_timeout_s``
(``vvc.request_timeout_ms`` in the config) still counts, but is logged as
slow and tallied in ``slow_calls``.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, TypeVar

from vvc.devices import Device, DeviceManager

logger = logging.getLogger("OpenVVC.Telemetry")

T = TypeVar("T")


class TelemetryBridge:
    """Reads aggregate/point signals and applies commands by device type.

    Args:
        devices:            Device registry for this node.
        request_timeout_s:  Budget for a single device call; ``None`` or 0
                            disables the slow-call check.
        clock:              Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        devices: DeviceManager,
        request_timeout_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._devices = devices
        self.request_timeout_s = request_timeout_s
        self._clock = clock
        self.slow_calls = 0

    def devices_of_type(self, device_type: str) -> List[Device]:
        return self._devices.devices_of_type(device_type)

    def read_aggregate(self, device_type: str, signal: str) -> float:
        """Sum *signal* over every device of *device_type*.

        Devices whose read fails are left out of the sum.
        """
        total = 0.0
        for device in self._devices.devices_of_type(device_type):
            try:
                total += float(self._timed(device, f"read {signal}", lambda: device.get_state(signal)))
            except Exception as exc:
                logger.warning(f"Read {device_type}/{signal} failed on {device.device_id}: {exc}")
        return total

    def read_single(self, device_type: str, signal: str) -> Optional[float]:
        """Read *signal* from the first device of *device_type*.

        Returns None when no such device exists or the read fails.
        """
        devices = self._devices.devices_of_type(device_type)
        if not devices:
            logger.warning(f"Couldn't find device type: {device_type}")
            return None
        device = devices[0]
        try:
            return float(self._timed(device, f"read {signal}", lambda: device.get_state(signal)))
        except Exception as exc:
            logger.warning(f"Read {device_type}/{signal} failed on {device.device_id}: {exc}")
            return None

    def apply_command(self, device_type: str, signal: str, value: float) -> int:
        """Send *value* to *signal* on every device of *device_type*.

        Returns:
            Number of devices that accepted the command.
        """
        devices = self._devices.devices_of_type(device_type)
        if not devices:
            logger.warning(f"Couldn't find device type: {device_type}; command skipped")
            return 0

        applied = 0
        for device in devices:
            try:
                self._timed(device, f"command {signal}", lambda: device.set_command(signal, float(value)))
                applied += 1
                logger.debug(f"Commanded {device.device_id}: {signal}={value}")
            except Exception as exc:
                logger.warning(f"Command {signal}={value} failed on {device.device_id}: {exc}")
        return applied

    def _timed(self, device: Device, what: str, call: Callable[[], T]) -> T:
        started = self._clock()
        result = call()
        elapsed = self._clock() - started
        if self.request_timeout_s and elapsed > self.request_timeout_s:
            self.slow_calls += 1
            logger.warning(
                f"Slow device {device.device_id}: {what} took {elapsed * 1000:.0f} ms "
                f"(budget {self.request_timeout_s * 1000:.0f} ms)"
            )
        return result
