"""Wall clock and cancellable timer primitives.

Everything time-dependent in the library (cache expiry, quota pacing,
coverage checks) reads time through a :class:`Clock` so tests can inject a
manual one and travel in time deterministically.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any, Protocol


class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled before it fires."""

    def cancel(self) -> None:
        ...


class Clock(Protocol):
    """Structural clock interface.

    ``now()`` returns epoch seconds.  ``call_later()`` schedules *callback*
    after *delay* seconds and returns a cancellable handle.
    """

    def now(self) -> float:
        ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...


class LoopClock:
    """Production clock: ``time.time()`` plus the running asyncio loop's timers."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay), callback, *args)
