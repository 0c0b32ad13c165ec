"""
OpenVVC peer transport -- JSON datagrams between nodes.

Each datagram carries one module message and the sender's node id::

    {"source": "slave-1", "message": {...ModuleMessage.to_dict()...}}

Several local agents can share one socket: inbound messages are handed to the
callback subscribed for the envelope's ``recipient_module``.

Config::

    node:
      uuid: slave-1
      listen: 0.0.0.0:51870
"""

from __future__ import annotations

import json
import logging
import socket
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from vvc.protocol.message import ModuleMessage

logger = logging.getLogger("OpenVVC.Transport")

MAX_DATAGRAM = 65507

# Inbound callback: (envelope dict, sender id) -> Any
InboundFn = Callable[[Dict[str, Any], str], Any]


def parse_address(address: str) -> Tuple[str, int]:
    """Split ``host:port`` into ``(host, port)``."""
    host, sep, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"Invalid peer address: {address!r}")
    return host, int(port)


class PeerTransport(ABC):
    """Sends module messages to peers identified by address."""

    @abstractmethod
    def send(self, address: str, message: ModuleMessage) -> bool:
        """Send *message* to *address*; return False if it could not be sent."""


class UdpTransport(PeerTransport):
    """Best-effort UDP transport with a background receive thread."""

    def __init__(self, uuid: str, listen: str = "0.0.0.0:0"):
        self.uuid = uuid
        self._listen = parse_address(listen)
        self._sock: Optional[socket.socket] = None
        self._subscribers: Dict[str, InboundFn] = {}
        self._lock = threading.Lock()
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self.sent = 0
        self.received = 0

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """Bound ``(host, port)`` once started."""
        return self._sock.getsockname() if self._sock else None

    def subscribe(self, module: str, callback: InboundFn) -> None:
        """Deliver messages addressed to *module* to *callback*."""
        with self._lock:
            self._subscribers[module] = callback

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(self._listen)
        sock.settimeout(0.5)
        self._sock = sock
        self._running = True
        self._thread = threading.Thread(target=self._receive_loop, daemon=True, name="vvc-transport")
        self._thread.start()
        logger.info("Transport listening on %s:%d", *self.address)

    def stop(self) -> None:
        self._running = False
        if self._thread:
            self._thread.join(timeout=2)
        if self._sock:
            self._sock.close()
            self._sock = None

    # ------------------------------------------------------------------
    # Send / receive
    # ------------------------------------------------------------------

    def send(self, address: str, message: ModuleMessage) -> bool:
        if self._sock is None:
            logger.warning(f"Transport not started; dropped {message.describe()}")
            return False
        datagram = json.dumps({"source": self.uuid, "message": message.to_dict()}).encode()
        try:
            self._sock.sendto(datagram, parse_address(address))
        except (OSError, ValueError) as exc:
            logger.warning(f"Send to {address} failed: {exc}")
            return False
        self.sent += 1
        return True

    def _receive_loop(self) -> None:
        while self._running:
            try:
                data, origin = self._sock.recvfrom(MAX_DATAGRAM)
            except socket.timeout:
                continue
            except OSError as exc:
                if self._running:
                    logger.error(f"Receive failed: {exc}")
                return
            self.received += 1
            self.deliver(data, origin)

    def deliver(self, data: bytes, origin: Any = None) -> bool:
        """Decode one datagram and hand it to its module's subscriber."""
        try:
            frame = json.loads(data.decode())
            message = frame["message"]
            source = str(frame.get("source", ""))
            module = str(message.get("recipient_module", ""))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning(f"Dropped malformed datagram from {origin}: {exc}")
            return False

        with self._lock:
            callback = self._subscribers.get(module)
        if callback is None:
            logger.debug(f"No local module '{module}' for datagram from {source}; dropped")
            return False
        try:
            callback(message, source)
        except Exception as exc:
            logger.warning(f"Module '{module}' failed on datagram from {source}: {exc!r}")
            return False
        return True
