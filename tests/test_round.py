"""Tests for RoundController — state machine, periodic vs boundary path, outcome handling."""

from unittest.mock import MagicMock

import pytest

from vvc.round import RoundController, RoundState
from vvc.scheduler import NEXT_PHASE, Cancelled, Scheduler, SchedulerFault, TimerHandle

P = 0.5


class _RecordingScheduler(Scheduler):
    """Scheduler stand-in that records calls instead of running them."""

    def __init__(self, remaining=10.0):
        self.remaining = remaining
        self.calls = []
        self._ids = 0

    def allocate_timer(self, module):
        self._ids += 1
        return TimerHandle(module, self._ids)

    def schedule(self, target, callback, delay=None):
        self.calls.append((target, callback, delay))

    def time_remaining(self):
        return self.remaining


def _make_controller(remaining=10.0):
    scheduler = _RecordingScheduler(remaining)
    cycle = MagicMock()
    controller = RoundController(scheduler, cycle, round_time_s=P)
    return controller, scheduler, cycle


class TestStart:
    def test_initially_idle(self):
        controller, _, _ = _make_controller()
        assert controller.state is RoundState.IDLE

    def test_allocates_two_timers(self):
        controller, scheduler, _ = _make_controller()
        assert scheduler._ids == 2

    def test_start_schedules_first_round(self):
        controller, scheduler, _ = _make_controller()
        controller.start()
        target, callback, delay = scheduler.calls[-1]
        assert target == "vvc"
        assert callback == controller.first_round
        assert delay is None
        assert controller.state is RoundState.AWAITING_FIRST_ROUND


class TestFirstRound:
    def test_success_schedules_manage_now(self):
        controller, scheduler, _ = _make_controller()
        controller.start()
        controller.first_round(None)
        target, callback, delay = scheduler.calls[-1]
        assert target == "vvc"
        assert callback == controller.vvc_manage
        assert delay is None
        assert controller.state is RoundState.ROUND_ACTIVE

    def test_cancelled_stays_idle_without_rescheduling(self):
        controller, scheduler, _ = _make_controller()
        controller.start()
        before = len(scheduler.calls)
        controller.first_round(Cancelled("stop"))
        assert len(scheduler.calls) == before
        assert controller.state is RoundState.IDLE

    def test_fault_is_raised(self):
        controller, _, _ = _make_controller()
        with pytest.raises(SchedulerFault):
            controller.first_round(SchedulerFault("clock broke"))
        assert controller.state is RoundState.IDLE


class TestVVCManage:
    def test_schedules_next_round_before_running_cycle(self):
        controller, scheduler, cycle = _make_controller()
        order = []
        cycle.run.side_effect = lambda: order.append(("cycle", len(scheduler.calls)))
        controller.vvc_manage(None)
        assert order == [("cycle", 1)]
        assert controller.rounds_run == 1

    def test_cancelled_does_not_run_cycle(self):
        controller, scheduler, cycle = _make_controller()
        controller.vvc_manage(Cancelled("aborted"))
        cycle.run.assert_not_called()
        assert scheduler.calls == []

    def test_fault_propagates_without_running_cycle(self):
        controller, _, cycle = _make_controller()
        with pytest.raises(SchedulerFault):
            controller.vvc_manage(SchedulerFault("timer error"))
        cycle.run.assert_not_called()

    def test_cycle_exception_does_not_stop_rounds(self):
        controller, scheduler, cycle = _make_controller()
        cycle.run.side_effect = RuntimeError("unexpected")
        controller.vvc_manage(None)
        assert len(scheduler.calls) == 1


class TestScheduleNextRound:
    def test_periodic_path_with_three_periods_left(self):
        controller, scheduler, _ = _make_controller(remaining=3 * P)
        assert controller.schedule_next_round() is True
        target, callback, delay = scheduler.calls[-1]
        assert isinstance(target, TimerHandle)
        assert callback == controller.vvc_manage
        assert delay == P

    def test_boundary_path_with_one_and_a_half_periods_left(self):
        controller, scheduler, _ = _make_controller(remaining=1.5 * P)
        assert controller.schedule_next_round() is False
        target, callback, delay = scheduler.calls[-1]
        assert isinstance(target, TimerHandle)
        assert callback == controller.first_round
        assert delay is NEXT_PHASE
        assert controller.state is RoundState.AWAITING_FIRST_ROUND

    def test_exactly_two_periods_takes_boundary_path(self):
        controller, _, _ = _make_controller(remaining=2 * P)
        assert controller.schedule_next_round() is False

    def test_periodic_and_boundary_use_different_timers(self):
        controller, scheduler, _ = _make_controller(remaining=3 * P)
        controller.schedule_next_round()
        scheduler.remaining = P
        controller.schedule_next_round()
        assert scheduler.calls[0][0] != scheduler.calls[1][0]
