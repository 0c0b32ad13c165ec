"""
OpenVVC Scheduler -- the time-slot clock round-based modules run against.

The node's time is divided into repeating *phases*, one per module.  Work for a
module runs only while that module's phase is active, one task at a time, on a
single worker thread.  Modules talk to the scheduler through the small
:class:`Scheduler` contract:

    allocate_timer(module)                -> TimerHandle
    schedule(module_or_handle, cb, delay) -> None
    time_remaining()                      -> seconds left in the current phase

Every callback receives exactly one argument: ``None`` on success, or a
:class:`SchedulerError`.  Cancellation (:class:`Cancelled`) and every other
failure (:class:`SchedulerFault`) are distinct types so callers can never
confuse the two.

Config format::

    scheduler:
      phases:          # ordered module -> phase length in milliseconds
        vvc: 2000
        gm: 1000
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Tuple, Union

logger = logging.getLogger("OpenVVC.Scheduler")


class SchedulerError(Exception):
    """Outcome delivered to a scheduled callback when it did not simply fire."""


class Cancelled(SchedulerError):
    """The timer was aborted: rescheduled, cancelled, or the scheduler stopped."""


class SchedulerFault(SchedulerError):
    """Any scheduler failure other than cancellation."""


Callback = Callable[[Optional[SchedulerError]], None]


class _NextPhase:
    def __repr__(self) -> str:
        return "NEXT_PHASE"


#: Pass as ``delay`` to wait until the start of the module's next phase.
NEXT_PHASE = _NextPhase()


@dataclass(frozen=True)
class TimerHandle:
    """Opaque timer owned by one module."""

    module: str
    timer_id: int


class Scheduler(ABC):
    """Contract consumed by :class:`~vvc.round.RoundController`."""

    @abstractmethod
    def allocate_timer(self, module: str) -> TimerHandle:
        """Create a timer that fires inside *module*'s phase."""

    @abstractmethod
    def schedule(
        self,
        target: Union[str, TimerHandle],
        callback: Callback,
        delay: Union[float, _NextPhase, None] = None,
    ) -> None:
        """Run *callback*.

        With a module name, the callback is queued to run as soon as the
        module's phase is active.  With a :class:`TimerHandle`, it runs after
        *delay* seconds, or at the next phase start when *delay* is
        :data:`NEXT_PHASE`.
        """

    @abstractmethod
    def time_remaining(self) -> float:
        """Seconds left in the currently active phase."""


@dataclass(order=True)
class _Pending:
    deadline: float
    seq: int
    handle: TimerHandle = field(compare=False)
    callback: Callback = field(compare=False)
    next_phase: bool = field(default=False, compare=False)
    live: bool = field(default=True, compare=False)


class ThreadedScheduler(Scheduler):
    """Single worker thread cycling through fixed-length module phases.

    Args:
        phases: Ordered ``(module, seconds)`` pairs.  The cycle repeats
            forever; a single-module list gives one phase that restarts every
            ``seconds``.
        clock: Monotonic time source (seconds), injectable for tests.
    """

    def __init__(
        self,
        phases: List[Tuple[str, float]],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not phases:
            raise ValueError("ThreadedScheduler needs at least one phase")
        for module, length in phases:
            if length <= 0:
                raise ValueError(f"Phase '{module}' must have a positive length")
        self._phases = list(phases)
        self._modules = {module for module, _ in phases}
        self._clock = clock

        self._cond = threading.Condition()
        self._ready: Dict[str, Deque[Tuple[Callback, Optional[SchedulerError]]]] = {
            module: deque() for module in self._modules
        }
        self._timers: Dict[TimerHandle, _Pending] = {}
        self._deadlines: List[_Pending] = []
        self._timer_ids = itertools.count(1)
        self._seq = itertools.count()

        self._phase_index = 0
        self._phase_started = 0.0
        self._phase_count = 0

        self._running = False
        self._thread: Optional[threading.Thread] = None
        self.fatal_error: Optional[BaseException] = None

    @classmethod
    def from_config(cls, config: dict) -> ThreadedScheduler:
        """Build from the ``scheduler.phases`` config mapping (milliseconds)."""
        phases_cfg = (config.get("scheduler") or {}).get("phases") or {"vvc": 2000}
        phases = [(str(name), float(ms) / 1000.0) for name, ms in phases_cfg.items()]
        return cls(phases)

    # ------------------------------------------------------------------
    # Scheduler contract
    # ------------------------------------------------------------------

    def allocate_timer(self, module: str) -> TimerHandle:
        self._check_module(module)
        return TimerHandle(module=module, timer_id=next(self._timer_ids))

    def schedule(
        self,
        target: Union[str, TimerHandle],
        callback: Callback,
        delay: Union[float, _NextPhase, None] = None,
    ) -> None:
        with self._cond:
            if isinstance(target, TimerHandle):
                self._check_module(target.module)
                self._arm(target, callback, delay)
            else:
                self._check_module(target)
                self._ready[target].append((callback, None))
            self._cond.notify_all()

    def time_remaining(self) -> float:
        with self._cond:
            return max(0.0, self._phase_end() - self._clock())

    def cancel(self, handle: TimerHandle) -> bool:
        """Abort a pending timer; its callback receives :class:`Cancelled`."""
        with self._cond:
            pending = self._timers.pop(handle, None)
            if pending is None:
                return False
            pending.live = False
            self._ready[handle.module].append((pending.callback, Cancelled("timer cancelled")))
            self._cond.notify_all()
            return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def current_module(self) -> str:
        with self._cond:
            return self._phases[self._phase_index][0]

    @property
    def phase_count(self) -> int:
        """Number of phase boundaries crossed since :meth:`start`."""
        with self._cond:
            return self._phase_count

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the worker thread at the beginning of the first phase."""
        with self._cond:
            if self._running:
                return
            self._running = True
            self._phase_index = 0
            self._phase_started = self._clock()
        self._thread = threading.Thread(target=self._run, daemon=True, name="vvc-scheduler")
        self._thread.start()
        logger.info(
            "Scheduler started: phases=%s",
            ", ".join(f"{m}={length:.3f}s" for m, length in self._phases),
        )

    def stop(self) -> None:
        """Stop the worker and cancel every pending callback."""
        with self._cond:
            self._running = False
            self._cond.notify_all()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)

        with self._cond:
            aborted: List[Callback] = [p.callback for p in self._timers.values()]
            for queue in self._ready.values():
                aborted.extend(cb for cb, _ in queue)
                queue.clear()
            self._timers.clear()
            self._deadlines.clear()

        for callback in aborted:
            try:
                callback(Cancelled("scheduler stopped"))
            except Exception as exc:
                logger.warning(f"Callback raised while being cancelled: {exc}")
        logger.info("Scheduler stopped")

    def join(self, timeout: Optional[float] = None) -> None:
        """Block until the worker exits; re-raise its fatal error, if any."""
        if self._thread is not None:
            self._thread.join(timeout)
        if self.fatal_error is not None:
            raise self.fatal_error

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_module(self, module: str) -> None:
        if module not in self._modules:
            raise ValueError(f"Unknown scheduler module: {module!r}")

    def _arm(self, handle: TimerHandle, callback: Callback, delay) -> None:
        previous = self._timers.pop(handle, None)
        if previous is not None:
            previous.live = False
            self._ready[handle.module].append((previous.callback, Cancelled("timer rescheduled")))

        if delay is NEXT_PHASE:
            pending = _Pending(float("inf"), next(self._seq), handle, callback, next_phase=True)
        else:
            seconds = float(delay or 0.0)
            pending = _Pending(self._clock() + seconds, next(self._seq), handle, callback)
            heapq.heappush(self._deadlines, pending)
        self._timers[handle] = pending

    def _phase_end(self) -> float:
        return self._phase_started + self._phases[self._phase_index][1]

    def _advance_phase(self, now: float) -> None:
        self._phase_index = (self._phase_index + 1) % len(self._phases)
        self._phase_started = now
        self._phase_count += 1
        module = self._phases[self._phase_index][0]
        logger.debug(f"Phase change -> {module}")

        for handle, pending in list(self._timers.items()):
            if pending.next_phase and handle.module == module:
                del self._timers[handle]
                pending.live = False
                self._ready[module].append((pending.callback, None))

    def _collect_due(self, module: str, now: float) -> Optional[float]:
        """Queue expired timers for *module*; return the earliest future deadline."""
        deferred: List[_Pending] = []
        earliest: Optional[float] = None
        while self._deadlines and self._deadlines[0].deadline <= now:
            pending = heapq.heappop(self._deadlines)
            if not pending.live:
                continue
            if pending.handle.module != module:
                # Expired outside its phase: fires when that phase comes round.
                deferred.append(pending)
                continue
            del self._timers[pending.handle]
            pending.live = False
            self._ready[module].append((pending.callback, None))
        for pending in deferred:
            heapq.heappush(self._deadlines, pending)

        for pending in self._deadlines:
            if pending.live and pending.handle.module == module and pending.deadline > now:
                if earliest is None or pending.deadline < earliest:
                    earliest = pending.deadline
        return earliest

    def _next_task(self) -> Optional[Tuple[Callback, Optional[SchedulerError]]]:
        with self._cond:
            while self._running:
                now = self._clock()
                if now >= self._phase_end():
                    self._advance_phase(now)
                    continue

                module = self._phases[self._phase_index][0]
                earliest = self._collect_due(module, now)
                if self._ready[module]:
                    return self._ready[module].popleft()

                wake_at = self._phase_end()
                if earliest is not None:
                    wake_at = min(wake_at, earliest)
                self._cond.wait(timeout=max(0.0, wake_at - now))
            return None

    def _run(self) -> None:
        while True:
            task = self._next_task()
            if task is None:
                return
            callback, outcome = task
            try:
                callback(outcome)
            except Exception as exc:
                logger.critical(f"Scheduled callback failed, stopping scheduler: {exc!r}")
                with self._cond:
                    self.fatal_error = exc
                    self._running = False
                    self._cond.notify_all()
                return
