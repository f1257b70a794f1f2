"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Clocks supplying the current time and cancellable eviction timers.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from collections.abc import Callable
from typing import Any, Protocol

from .types import TimerHandle


class Clock(Protocol):
    """Time source used by the freshness engine."""

    def now(self) -> float:
        """Return the current time in seconds."""
        ...

    def call_later(
        self, delay_s: float, callback: Callable[..., Any], *args: Any
    ) -> TimerHandle:
        """Schedule `callback(*args)` after `delay_s` seconds."""
        ...


class LoopClock:
    """Monotonic clock whose timers run on the running asyncio loop."""

    def now(self) -> float:
        return time.monotonic()

    def call_later(
        self, delay_s: float, callback: Callable[..., Any], *args: Any
    ) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay_s, callback, *args)


class ManualTimer:
    """Timer handle produced by `ManualClock`."""

    __slots__ = ("due_s", "callback", "args", "cancelled")

    def __init__(self, due_s: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.due_s = due_s
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """
    Deterministic clock for tests and simulations.

    Time only moves on `advance`. Due timers fire synchronously inside
    `advance`, in due-time order, with `now()` set to each timer's due time
    while its callback runs.
    """

    def __init__(self, start_s: float = 0.0) -> None:
        self._now = start_s
        self._seq = itertools.count()
        self._timers: list[tuple[float, int, ManualTimer]] = []

    def now(self) -> float:
        return self._now

    def call_later(
        self, delay_s: float, callback: Callable[..., Any], *args: Any
    ) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay_s), callback, args)
        heapq.heappush(self._timers, (timer.due_s, next(self._seq), timer))
        return timer

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        target = self._now + seconds
        while self._timers and self._timers[0][0] <= target:
            due_s, _, timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = due_s
            timer.callback(*timer.args)
        self._now = target

    @property
    def pending_timers(self) -> int:
        """Number of scheduled timers that have not fired or been cancelled."""
        return sum(1 for _, _, timer in self._timers if not timer.cancelled)
