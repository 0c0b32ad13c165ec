"""
OpenVVC message protocol.

Typed Volt/VAR and group-management payloads, the JSON module-message
envelope that carries them, and the router that decodes inbound envelopes
and builds outbound ones.
"""

from vvc.protocol.message import (
    Category,
    GradientMessage,
    LineReadingsMessage,
    MessageDecodeError,
    ModuleMessage,
    PeerListMessage,
    VoltageDeltaMessage,
)
from vvc.protocol.router import MessageRouter

__all__ = [
    "Category",
    "ModuleMessage",
    "MessageDecodeError",
    "VoltageDeltaMessage",
    "LineReadingsMessage",
    "GradientMessage",
    "PeerListMessage",
    "MessageRouter",
]
