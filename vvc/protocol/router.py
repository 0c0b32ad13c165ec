"""
Module Message Router.

Decodes inbound :class:`~vvc.protocol.message.ModuleMessage` envelopes into
typed payloads and dispatches them to the handler registered for the payload
type.  Also builds the outbound envelopes this agent sends.

Inbound flow:
    1. Parse the envelope dict.
    2. Look up the (category, variant) pair; unknown pairs are dropped with a
       warning.
    3. Decode the payload; malformed payloads are dropped with a warning.
    4. Call the handler with ``(payload, sender_id)``.

Handlers run on the transport's receive thread.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Type

from vvc.peers import PeerRecord
from vvc.protocol.message import (
    GradientMessage,
    LineReadingsMessage,
    MessageDecodeError,
    ModuleMessage,
    Payload,
    PeerListMessage,
    VoltageDeltaMessage,
    capture_time_now,
)

logger = logging.getLogger("OpenVVC.Router")

# Handler signature: (payload, sender_id) -> None
HandlerFn = Callable[[Any, str], None]


class MessageRouter:
    """Route module messages to payload handlers.

    Args:
        uuid:    This node's identifier, stamped as ``source`` on outbound messages.
        module:  Destination-module tag for outbound messages.
    """

    def __init__(self, uuid: str, module: str = "vvc"):
        self.uuid = uuid
        self.module = module
        self._handlers: Dict[Type, HandlerFn] = {}
        self._messages_routed = 0
        self._messages_dropped = 0

    @property
    def messages_routed(self) -> int:
        return self._messages_routed

    @property
    def messages_dropped(self) -> int:
        return self._messages_dropped

    def register_handler(self, payload_type: Type, handler: HandlerFn) -> None:
        """Register *handler* for one payload type."""
        self._handlers[payload_type] = handler

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def decode(self, data: Dict[str, Any]) -> Optional[Payload]:
        """Decode an envelope dict into a typed payload.

        Returns None (after logging a warning) when the tag pair is unknown.

        Raises:
            MessageDecodeError: The envelope or a known payload is malformed.
        """
        envelope = ModuleMessage.from_dict(data)
        payload = envelope.unwrap()
        if payload is None:
            logger.warning(f"Dropped message of unexpected type: {envelope.describe()}")
        return payload

    def route(self, data: Dict[str, Any], sender: Optional[str] = None) -> bool:
        """Decode *data* and hand it to the matching handler.

        Args:
            data:    Envelope dict as received from the transport.
            sender:  Sending node id; defaults to the envelope's ``source``.

        Returns:
            True if a handler ran successfully.
        """
        try:
            payload = self.decode(data)
        except (MessageDecodeError, TypeError, ValueError, OverflowError) as exc:
            logger.warning(f"Dropped malformed message: {exc}")
            self._messages_dropped += 1
            return False
        if payload is None:
            self._messages_dropped += 1
            return False

        if sender is None:
            sender = str(data.get("source", ""))

        handler = self._handlers.get(type(payload))
        if handler is None:
            logger.warning(f"No handler registered for {type(payload).__name__}; dropped")
            self._messages_dropped += 1
            return False

        try:
            handler(payload, sender)
        except Exception as e:
            logger.error("Handler error for %s from %s: %s", type(payload).__name__, sender, e)
            return False
        self._messages_routed += 1
        return True

    # ------------------------------------------------------------------
    # Outbound builders
    # ------------------------------------------------------------------

    def prepare_for_sending(self, message: Payload, recipient: Optional[str] = None) -> ModuleMessage:
        """Wrap *message* into its category envelope addressed to *recipient*."""
        return ModuleMessage.wrap(message, recipient_module=recipient or self.module, source=self.uuid)

    def voltage_delta(self, control_factor: int, phase_measurement: float, reading_location: str) -> ModuleMessage:
        return self.prepare_for_sending(
            VoltageDeltaMessage(
                control_factor=int(control_factor),
                phase_measurement=float(phase_measurement),
                reading_location=reading_location,
            )
        )

    def line_readings(self, values: Iterable[float]) -> ModuleMessage:
        return self.prepare_for_sending(
            LineReadingsMessage(measurements=tuple(float(v) for v in values), capture_time=capture_time_now())
        )

    def gradient(self, values: Sequence[float]) -> ModuleMessage:
        return self.prepare_for_sending(
            GradientMessage(values=tuple(float(v) for v in values), capture_time=capture_time_now())
        )

    def peer_list(self, peers: Iterable[PeerRecord]) -> ModuleMessage:
        return self.prepare_for_sending(PeerListMessage(peers=tuple(peers)))
