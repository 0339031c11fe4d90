import pytest

from opsnavigator.scheduler import TickScheduler


def test_timers_fire_in_deadline_then_registration_order() -> None:
    scheduler = TickScheduler()
    fired: list[str] = []
    scheduler.call_later(200, lambda: fired.append("late"))
    scheduler.call_later(100, lambda: fired.append("first"))
    scheduler.call_later(100, lambda: fired.append("second"))

    assert scheduler.advance(150) == 2
    assert fired == ["first", "second"]
    assert scheduler.now_ms == 150
    assert scheduler.pending == 1

    scheduler.advance(50)
    assert fired == ["first", "second", "late"]


def test_cancelled_timer_never_fires() -> None:
    scheduler = TickScheduler()
    fired: list[int] = []
    handle = scheduler.call_later(10, lambda: fired.append(1))
    scheduler.cancel(handle)

    assert scheduler.advance(100) == 0
    assert fired == []
    assert scheduler.pending == 0


def test_callbacks_can_schedule_within_the_window() -> None:
    scheduler = TickScheduler()
    seen: list[int] = []

    def chain() -> None:
        seen.append(scheduler.now_ms)
        if len(seen) < 3:
            scheduler.call_later(100, chain)

    scheduler.call_later(100, chain)
    scheduler.advance(1000)
    assert seen == [100, 200, 300]


def test_cancel_all_clears_pending() -> None:
    scheduler = TickScheduler()
    scheduler.call_later(1, lambda: None)
    scheduler.call_later(2, lambda: None)
    scheduler.cancel_all()
    assert scheduler.pending == 0
    assert scheduler.next_deadline() is None


def test_run_until_idle_sleeps_through_gaps() -> None:
    scheduler = TickScheduler()
    sleeps: list[float] = []
    scheduler.call_later(250, lambda: scheduler.call_later(500, lambda: None))

    fired = scheduler.run_until_idle(sleep=sleeps.append)
    assert fired == 2
    assert sleeps == [0.25, 0.5]
    assert scheduler.now_ms == 750


def test_run_until_idle_gives_up_on_endless_timers() -> None:
    scheduler = TickScheduler()

    def again() -> None:
        scheduler.call_later(1, again)

    scheduler.call_later(1, again)
    with pytest.raises(RuntimeError):
        scheduler.run_until_idle(max_steps=5)
