"""PeerDirectory — the current group membership and its leader."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger("OpenVVC.Peers")


@dataclass(frozen=True)
class PeerRecord:
    """A peer node as announced by the group-management leader."""

    identifier: str  # opaque node uuid
    address: str  # host:port
    is_leader: bool = False

    def to_dict(self) -> dict:
        return {"id": self.identifier, "address": self.address}

    @classmethod
    def from_dict(cls, d: dict) -> PeerRecord:
        return cls(identifier=str(d["id"]), address=str(d["address"]))


class PeerDirectory:
    """Thread-safe peer set, replaced wholesale on every membership update.

    Written by the message-handling thread, read by the round thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._peers: Dict[str, PeerRecord] = {}
        self._leader: Optional[str] = None
        self._updates = 0

    def apply_membership_update(self, records: Iterable[PeerRecord], sender_id: str) -> None:
        """Replace the peer set with *records* and make *sender_id* the leader."""
        peers = {r.identifier: replace(r, is_leader=(r.identifier == sender_id)) for r in records}
        with self._lock:
            self._peers = peers
            self._leader = sender_id
            self._updates += 1
        logger.info(f"Peer list updated by {sender_id}: {len(peers)} peer(s)")

    def snapshot(self) -> List[PeerRecord]:
        """Point-in-time copy of the current peers, safe to iterate."""
        with self._lock:
            return list(self._peers.values())

    def leader(self) -> Optional[str]:
        """Current leader id, or None if no membership update has arrived."""
        with self._lock:
            return self._leader

    def get(self, identifier: str) -> Optional[PeerRecord]:
        with self._lock:
            return self._peers.get(identifier)

    @property
    def update_count(self) -> int:
        with self._lock:
            return self._updates

    def __len__(self) -> int:
        with self._lock:
            return len(self._peers)
