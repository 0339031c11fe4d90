"""Deterministic tick source for timed transcript output and background timers."""

from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field

SleepFn = Callable[[float], None]


@dataclass(eq=False)
class TimerHandle:
    """Pending callback registered with a scheduler."""

    deadline_ms: int
    callback: Callable[[], None] = field(repr=False)
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class TickScheduler:
    """Virtual millisecond clock that fires callbacks when time is advanced.

    Nothing runs on its own: callers move time forward with `advance` (tests)
    or `run_until_idle` (interactive playback, optionally sleeping real time).
    Timers with equal deadlines fire in registration order.
    """

    def __init__(self) -> None:
        self._now_ms = 0
        self._sequence = itertools.count()
        self._heap: list[tuple[int, int, TimerHandle]] = []

    @property
    def now_ms(self) -> int:
        return self._now_ms

    @property
    def pending(self) -> int:
        """Number of timers that are scheduled and not cancelled."""
        return sum(1 for _, _, handle in self._heap if not handle.cancelled)

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        """Schedule `callback` to run `delay_ms` after the current time."""
        deadline = self._now_ms + max(0, int(delay_ms))
        handle = TimerHandle(deadline_ms=deadline, callback=callback)
        heapq.heappush(self._heap, (deadline, next(self._sequence), handle))
        return handle

    def cancel(self, handle: TimerHandle) -> None:
        handle.cancel()

    def cancel_all(self) -> None:
        for _, _, handle in self._heap:
            handle.cancel()
        self._heap.clear()

    def next_deadline(self) -> int | None:
        self._drop_cancelled()
        if not self._heap:
            return None
        return self._heap[0][0]

    def advance(self, delta_ms: int) -> int:
        """Move the clock forward, firing every timer due in the window.

        Timers scheduled by a callback fire in the same call when their
        deadline still falls inside the window. Returns the number fired.
        """
        target = self._now_ms + max(0, int(delta_ms))
        fired = 0
        while True:
            self._drop_cancelled()
            if not self._heap or self._heap[0][0] > target:
                break
            deadline, _, handle = heapq.heappop(self._heap)
            self._now_ms = deadline
            handle.cancelled = True
            handle.callback()
            fired += 1
        self._now_ms = target
        return fired

    def run_until_idle(self, sleep: SleepFn | None = None, max_steps: int = 10_000) -> int:
        """Fire timers until none are pending, sleeping through gaps when `sleep` is given."""
        fired = 0
        for _ in range(max_steps):
            deadline = self.next_deadline()
            if deadline is None:
                return fired
            gap = deadline - self._now_ms
            if sleep is not None and gap > 0:
                sleep(gap / 1000)
            fired += self.advance(gap)
        raise RuntimeError(f"Scheduler still busy after {max_steps} steps.")

    def _drop_cancelled(self) -> None:
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)
