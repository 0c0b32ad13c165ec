from abc import ABC, abstractmethod

__all__ = ["Device", "DeviceError"]


class DeviceError(RuntimeError):
    """Raised by a device when a read or command cannot be carried out."""


class Device(ABC):
    """Abstract base class for every device exposed on the telemetry bus.

    A device has a unique ``device_id`` and a ``device_type`` (e.g. ``SST1``,
    ``Drer``, ``Load``).  Signals are addressed by name, e.g.
    ``AOUT/Active_Pwr_Fb`` for a reading or ``AIN/Reactive_Pwr_cmd`` for a
    command.
    """

    def __init__(self, device_id: str, device_type: str):
        self.device_id = device_id
        self.device_type = device_type

    @abstractmethod
    def get_state(self, signal: str) -> float:
        """Return the current value of *signal*.

        Raises:
            DeviceError: The signal is unknown or the device is unreachable.
        """

    @abstractmethod
    def set_command(self, signal: str, value: float) -> None:
        """Write *value* to the command *signal*.

        Raises:
            DeviceError: The command could not be delivered.
        """

    def close(self) -> None:
        """Release any resources held by the device."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.device_id!r}, type={self.device_type!r})"
