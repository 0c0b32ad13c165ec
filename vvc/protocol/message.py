"""
Module message envelope and typed payloads.

Every message on the wire is a plain JSON object with a two-level tag::

    {
      "category": "volt_var",            # volt_var | group_management
      "variant": "gradient",             # see table below
      "recipient_module": "vvc",         # local agent the transport hands it to
      "source": "slave-1",
      "timestamp": 1718000000.0,
      "payload": {"values": [0.5, 1.0, 1.5], "capture_time": "..."}
    }

Known variants::

    volt_var          voltage_delta   VoltageDeltaMessage
    volt_var          line_readings   LineReadingsMessage
    volt_var          gradient        GradientMessage
    group_management  peer_list       PeerListMessage

Unknown category/variant pairs decode to ``None`` so newer peers can add
variants without breaking older ones.  A known variant with a malformed
payload raises :class:`MessageDecodeError`.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Type, Union

from vvc.peers import PeerRecord


class MessageDecodeError(ValueError):
    """A recognised message variant carried an unusable payload."""


class Category(str, Enum):
    """Outer message category."""

    VOLT_VAR = "volt_var"
    GROUP_MANAGEMENT = "group_management"


def capture_time_now() -> str:
    """Current UTC time as an ISO-8601 string (message capture stamps)."""
    return datetime.now(timezone.utc).isoformat()


def _floats(raw: Any, name: str) -> Tuple[float, ...]:
    if not isinstance(raw, (list, tuple)):
        raise MessageDecodeError(f"'{name}' must be a list of numbers")
    try:
        return tuple(float(v) for v in raw)
    except (TypeError, ValueError) as exc:
        raise MessageDecodeError(f"'{name}' contains a non-numeric value") from exc


def _integer(raw: Any, name: str) -> int:
    # bool is an int subclass; JSON true/false is not a control factor
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise MessageDecodeError(f"'{name}' must be an integer")
    if isinstance(raw, float) and not raw.is_integer():
        raise MessageDecodeError(f"'{name}' must be an integer, got {raw!r}")
    return int(raw)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VoltageDeltaMessage:
    """Advisory broadcast sent to every peer each round."""

    CATEGORY: ClassVar[Category] = Category.VOLT_VAR
    VARIANT: ClassVar[str] = "voltage_delta"

    control_factor: int
    phase_measurement: float
    reading_location: str

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, d: Dict[str, Any]) -> VoltageDeltaMessage:
        try:
            return cls(
                control_factor=_integer(d["control_factor"], "control_factor"),
                phase_measurement=float(d["phase_measurement"]),
                reading_location=str(d["reading_location"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise MessageDecodeError(f"Bad voltage_delta payload: {exc}") from exc


@dataclass(frozen=True)
class LineReadingsMessage:
    """Ordered line measurements with their capture time."""

    CATEGORY: ClassVar[Category] = Category.VOLT_VAR
    VARIANT: ClassVar[str] = "line_readings"

    measurements: Tuple[float, ...]
    capture_time: str

    def to_payload(self) -> Dict[str, Any]:
        return {"measurements": list(self.measurements), "capture_time": self.capture_time}

    @classmethod
    def from_payload(cls, d: Dict[str, Any]) -> LineReadingsMessage:
        try:
            return cls(
                measurements=_floats(d["measurements"], "measurements"),
                capture_time=str(d.get("capture_time", "")),
            )
        except KeyError as exc:
            raise MessageDecodeError(f"Bad line_readings payload: missing {exc}") from exc


@dataclass(frozen=True)
class GradientMessage:
    """Gradient vector, one component per actuator slot."""

    CATEGORY: ClassVar[Category] = Category.VOLT_VAR
    VARIANT: ClassVar[str] = "gradient"

    values: Tuple[float, ...]
    capture_time: str

    def to_payload(self) -> Dict[str, Any]:
        return {"values": list(self.values), "capture_time": self.capture_time}

    @classmethod
    def from_payload(cls, d: Dict[str, Any]) -> GradientMessage:
        try:
            return cls(
                values=_floats(d["values"], "values"),
                capture_time=str(d.get("capture_time", "")),
            )
        except KeyError as exc:
            raise MessageDecodeError(f"Bad gradient payload: missing {exc}") from exc


@dataclass(frozen=True)
class PeerListMessage:
    """Group membership as announced by the group leader."""

    CATEGORY: ClassVar[Category] = Category.GROUP_MANAGEMENT
    VARIANT: ClassVar[str] = "peer_list"

    peers: Tuple[PeerRecord, ...]

    def to_payload(self) -> Dict[str, Any]:
        return {"peers": [p.to_dict() for p in self.peers]}

    @classmethod
    def from_payload(cls, d: Dict[str, Any]) -> PeerListMessage:
        raw = d.get("peers")
        if not isinstance(raw, list):
            raise MessageDecodeError("Bad peer_list payload: 'peers' must be a list")
        try:
            return cls(peers=tuple(PeerRecord.from_dict(p) for p in raw))
        except (KeyError, TypeError) as exc:
            raise MessageDecodeError(f"Bad peer_list payload: {exc}") from exc


Payload = Union[VoltageDeltaMessage, LineReadingsMessage, GradientMessage, PeerListMessage]

PAYLOAD_TYPES: Dict[Tuple[str, str], Type[Payload]] = {
    (cls.CATEGORY.value, cls.VARIANT): cls
    for cls in (VoltageDeltaMessage, LineReadingsMessage, GradientMessage, PeerListMessage)
}


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


@dataclass
class ModuleMessage:
    """Envelope wrapping one payload for a destination module."""

    category: str
    variant: str
    payload: Dict[str, Any] = field(default_factory=dict)
    recipient_module: str = "vvc"
    source: str = ""
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def wrap(cls, message: Payload, recipient_module: str = "vvc", source: str = "") -> ModuleMessage:
        """Wrap a typed payload in its category envelope."""
        return cls(
            category=message.CATEGORY.value,
            variant=message.VARIANT,
            payload=message.to_payload(),
            recipient_module=recipient_module,
            source=source,
        )

    def unwrap(self) -> Optional[Payload]:
        """Decode the payload, or return None for an unknown tag pair.

        Raises:
            MessageDecodeError: Known variant, malformed payload.
        """
        cls = PAYLOAD_TYPES.get((self.category, self.variant))
        if cls is None:
            return None
        if not isinstance(self.payload, dict):
            raise MessageDecodeError(f"{self.category}/{self.variant} payload must be an object")
        return cls.from_payload(self.payload)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to a plain dict (JSON-ready)."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ModuleMessage:
        if not isinstance(data, dict):
            raise MessageDecodeError("Envelope must be a JSON object")
        return cls(
            category=str(data.get("category", "")),
            variant=str(data.get("variant", "")),
            payload=data.get("payload") or {},
            recipient_module=str(data.get("recipient_module", "")),
            source=str(data.get("source", "")),
            timestamp=float(data.get("timestamp", 0.0)),
        )

    def describe(self) -> str:
        return f"{self.category or '?'}/{self.variant or '?'} from={self.source or '?'} to={self.recipient_module or '?'}"
