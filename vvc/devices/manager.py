"""DeviceManager — thread-safe registry of the devices on this node."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from vvc.devices.base import Device

logger = logging.getLogger("OpenVVC.DeviceManager")


class DeviceManager:
    """Holds every registered :class:`Device`, keyed by id.

    Devices may be added or removed by an adapter thread while a round reads
    from them, so every lookup returns a copy.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._devices: Dict[str, Device] = {}

    def add(self, device: Device) -> None:
        with self._lock:
            if device.device_id in self._devices:
                raise ValueError(f"Duplicate device id: {device.device_id}")
            self._devices[device.device_id] = device
        logger.info(f"Device registered: {device.device_id} ({device.device_type})")

    def remove(self, device_id: str) -> Optional[Device]:
        with self._lock:
            device = self._devices.pop(device_id, None)
        if device is not None:
            logger.info(f"Device removed: {device_id}")
        return device

    def get(self, device_id: str) -> Optional[Device]:
        with self._lock:
            return self._devices.get(device_id)

    def devices_of_type(self, device_type: str) -> List[Device]:
        """Devices of *device_type*, in registration order."""
        with self._lock:
            return [d for d in self._devices.values() if d.device_type == device_type]

    def device_count(self) -> int:
        with self._lock:
            return len(self._devices)

    def close(self) -> None:
        with self._lock:
            devices = list(self._devices.values())
            self._devices.clear()
        for device in devices:
            try:
                device.close()
            except Exception as exc:
                logger.warning(f"Failed to close {device.device_id}: {exc}")
