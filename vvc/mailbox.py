"""Single-slot handoff of coordinator gradients to the round thread.

Gradients arrive asynchronously on the message-handling thread and are
consumed once per round on the scheduler thread.  The mailbox keeps only the
newest vector; reading does not clear it, so the last gradient keeps being
applied until the coordinator sends a new one.

Optionally a maximum age can be configured::

    vvc:
      max_gradient_age_s: 30   # null (default) = never expire

Past that age :meth:`GradientMailbox.take_latest` reports ``None`` (neutral
commands) while the stored vector itself is kept.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Tuple

logger = logging.getLogger("OpenVVC.Mailbox")


@dataclass(frozen=True)
class GradientVector:
    """Per-actuator correction signal; index = actuator slot."""

    values: Tuple[float, ...]
    capture_time: str = ""
    source: Optional[str] = None
    received_at: float = field(default_factory=time.monotonic, compare=False)

    @classmethod
    def of(cls, values: Sequence[float], capture_time: str = "", source: Optional[str] = None) -> GradientVector:
        return cls(values=tuple(float(v) for v in values), capture_time=capture_time, source=source)

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, index: int) -> float:
        return self.values[index]


class GradientMailbox:
    """Lock-guarded single slot holding the latest :class:`GradientVector`.

    Args:
        max_age_s: Optional staleness limit in seconds (None = never expire).
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_age_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = threading.Lock()
        self._latest: Optional[GradientVector] = None
        self._published_at = 0.0
        self._publishes = 0
        self.max_age_s = max_age_s
        self._clock = clock

    def publish(self, vector: GradientVector) -> None:
        """Overwrite the stored vector.  Never blocks beyond the slot lock."""
        with self._lock:
            self._latest = vector
            self._published_at = self._clock()
            self._publishes += 1

    def take_latest(self) -> Optional[GradientVector]:
        """Return the stored vector without clearing it, or None if absent."""
        with self._lock:
            latest = self._latest
            age = self._clock() - self._published_at

        if latest is None:
            return None
        if self.max_age_s is not None and age > self.max_age_s:
            logger.warning(
                f"Stored gradient is {age:.1f}s old (limit {self.max_age_s}s) -- treating as absent"
            )
            return None
        return latest

    @property
    def publish_count(self) -> int:
        with self._lock:
            return self._publishes
