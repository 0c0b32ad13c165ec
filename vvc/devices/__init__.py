import logging

from .base import Device as Device
from .base import DeviceError as DeviceError
from .manager import DeviceManager as DeviceManager
from .simulated import SimulatedDevice as SimulatedDevice

logger = logging.getLogger("OpenVVC.Devices")


def build_devices(config: dict) -> DeviceManager:
    """Build a :class:`DeviceManager` from the ``devices`` config list.

    Each entry needs ``id`` and ``type``.  Entries with a ``class`` key are
    loaded from a fully-qualified class path and constructed with the entry
    dict; everything else becomes a :class:`SimulatedDevice`.
    """
    manager = DeviceManager()
    for entry in config.get("devices") or []:
        device_id = str(entry.get("id", ""))
        device_type = str(entry.get("type", ""))
        if not device_id or not device_type:
            logger.warning(f"Skipping device entry without id/type: {entry}")
            continue

        fq_class = entry.get("class", "")
        if fq_class:
            try:
                module_path, class_name = fq_class.rsplit(".", 1)
                import importlib

                mod = importlib.import_module(module_path)
                cls = getattr(mod, class_name)
                device = cls(entry)
            except Exception as exc:
                logger.warning(f"Failed to load device class '{fq_class}': {exc}")
                continue
        else:
            device = SimulatedDevice(device_id, device_type, entry.get("signals"))

        manager.add(device)
    return manager
