"""Cancellable timers: asyncio-backed for real sessions, virtual for tests.

Both schedulers expose the same two calls:

    handle = scheduler.call_later(0.5, callback)
    handle.cancel()

VirtualScheduler never touches the event loop; time only moves when a test
calls advance().
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable


# Float slack so advance(0.49); advance(0.01) reaches a 0.5 deadline
_EPSILON = 1e-9


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def now(self) -> float: ...


class LoopScheduler:
    """Schedules on the running asyncio loop (resolved lazily, per call)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self._get_loop().call_later(delay, callback)

    def now(self) -> float:
        return self._get_loop().time()


class _VirtualTimer:
    __slots__ = ("callback", "cancelled", "deadline")

    def __init__(self, deadline: float, callback: Callable[[], None]) -> None:
        self.deadline = deadline
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler:
    """Deterministic clock. Timers fire only inside advance()."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._seq = itertools.count()
        self._heap: list[tuple[float, int, _VirtualTimer]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _VirtualTimer(self._now + max(0.0, delay), callback)
        heapq.heappush(self._heap, (timer.deadline, next(self._seq), timer))
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, t in self._heap if not t.cancelled)

    def advance(self, seconds: float) -> int:
        """Move time forward, firing due timers in deadline order. Returns count fired.

        Timers scheduled by a callback fire in the same call if they fall
        inside the window.
        """
        target = self._now + seconds
        fired = 0
        while self._heap and self._heap[0][0] <= target + _EPSILON:
            deadline, _, timer = heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            self._now = deadline
            timer.cancelled = True
            timer.callback()
            fired += 1
        self._now = target
        return fired
