"""
RoundController -- keeps the Volt/VAR rounds running against the phase clock.

States::

    IDLE -> AWAITING_FIRST_ROUND -> ROUND_ACTIVE -> AWAITING_FIRST_ROUND | ROUND_ACTIVE

Each round first books the next one and then runs the control cycle.  A new
round is only booked inside the current phase if more than two round periods
remain; otherwise the controller waits for the next phase boundary so that no
round overruns into another module's phase.

Scheduler outcomes:
    Cancelled       -- logged, controller goes idle, nothing is rescheduled.
    SchedulerFault  -- logged and re-raised; the supervisor decides what to do.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from vvc.cycle import ControlCycle
from vvc.scheduler import NEXT_PHASE, Cancelled, Scheduler, SchedulerError

logger = logging.getLogger("OpenVVC.RoundController")


class RoundState(Enum):
    IDLE = "idle"
    AWAITING_FIRST_ROUND = "awaiting_first_round"
    ROUND_ACTIVE = "round_active"


class RoundController:
    """Drives :class:`~vvc.cycle.ControlCycle` once per round.

    Args:
        scheduler:     Phase scheduler the rounds run on.
        cycle:         Control cycle to run each round.
        round_time_s:  Round period in seconds.
        module:        Scheduler module (phase) this controller belongs to.
    """

    def __init__(self, scheduler: Scheduler, cycle: ControlCycle, round_time_s: float, module: str = "vvc"):
        self._scheduler = scheduler
        self._cycle = cycle
        self.round_time_s = round_time_s
        self.module = module
        self.state = RoundState.IDLE
        self.rounds_run = 0

        self._round_timer = scheduler.allocate_timer(module)
        self._wait_timer = scheduler.allocate_timer(module)

    def start(self) -> None:
        """Queue the first round for this module's phase."""
        self._scheduler.schedule(self.module, self.first_round)
        self.state = RoundState.AWAITING_FIRST_ROUND
        logger.info("VVC is scheduled for the next phase.")

    def first_round(self, err: Optional[SchedulerError] = None) -> None:
        """Phase start: enter the round loop for the current phase."""
        if not self._proceed(err, "FirstRound"):
            return
        self.state = RoundState.ROUND_ACTIVE
        self._scheduler.schedule(self.module, self.vvc_manage)

    def vvc_manage(self, err: Optional[SchedulerError] = None) -> None:
        """Run one round: book the next round, then the control cycle."""
        if not self._proceed(err, "VVCManage"):
            return

        self.schedule_next_round()
        self.rounds_run += 1
        try:
            self._cycle.run()
        except Exception as exc:
            logger.exception(f"Control cycle for round {self.rounds_run} failed: {exc}")

    def schedule_next_round(self) -> bool:
        """Book the next round.

        Returns:
            True if the next round runs one period from now in this phase,
            False if the controller waits for the next phase boundary.
        """
        if self._scheduler.time_remaining() > 2 * self.round_time_s:
            self._scheduler.schedule(self._round_timer, self.vvc_manage, delay=self.round_time_s)
            logger.info(f"VVCManage scheduled in {self.round_time_s * 1000:.0f} ms.")
            return True

        self._scheduler.schedule(self._wait_timer, self.first_round, delay=NEXT_PHASE)
        self.state = RoundState.AWAITING_FIRST_ROUND
        logger.info("VVCManage scheduled for the next phase.")
        return False

    def _proceed(self, err: Optional[SchedulerError], step: str) -> bool:
        if err is None:
            return True
        self.state = RoundState.IDLE
        if isinstance(err, Cancelled):
            logger.info(f"{step} aborted: {err}")
            return False
        logger.error(f"{step} scheduler fault: {err!r}")
        raise err
