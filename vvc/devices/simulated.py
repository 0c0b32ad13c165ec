"""In-memory device for bench testing without a field bus.

Config::

    devices:
      - id: sst1
        type: SST1
        signals:
          AOUT/Active_Pwr_Fb: 12.5
"""

import logging
import threading
from collections import deque
from typing import Deque, Dict, Optional, Tuple

from .base import Device, DeviceError

logger = logging.getLogger("OpenVVC.SimulatedDevice")


class SimulatedDevice(Device):
    """Keeps signals in a dict; commands are written back as state.

    Only the most recent HISTORY commands are kept in ``commands``.
    """

    HISTORY = 100

    def __init__(self, device_id: str, device_type: str, signals: Optional[Dict[str, float]] = None):
        super().__init__(device_id, device_type)
        self._lock = threading.Lock()
        self._signals: Dict[str, float] = {k: float(v) for k, v in (signals or {}).items()}
        self.commands: Deque[Tuple[str, float]] = deque(maxlen=self.HISTORY)

    def get_state(self, signal: str) -> float:
        with self._lock:
            if signal not in self._signals:
                raise DeviceError(f"{self.device_id}: unknown signal '{signal}'")
            return self._signals[signal]

    def set_state(self, signal: str, value: float) -> None:
        """Inject a sensor value (bench/test use)."""
        with self._lock:
            self._signals[signal] = float(value)

    def set_command(self, signal: str, value: float) -> None:
        with self._lock:
            self._signals[signal] = float(value)
            self.commands.append((signal, float(value)))
        logger.debug(f"{self.device_id}: {signal} <- {value}")

    @property
    def last_command(self) -> Optional[Tuple[str, float]]:
        with self._lock:
            return self.commands[-1] if self.commands else None
