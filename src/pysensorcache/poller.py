"""Background polling driver.

Keeps the store warm for consumers such as dashboards that are left open
all day.  How long to wait between fetches is up to the caller: the quota
pacer alone spreads the remaining quota evenly, and :class:`PeakSchedule`
can be layered on top to poll close to the five-minute reporting interval
around a chosen time of day and back off exponentially away from it.
Either way every reading is eventually fetched, since each fetch covers
everything published since the previous one.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from pysensorcache._clock import Clock, LoopClock
from pysensorcache._constants import ONE_DAY, REPORTING_INTERVAL

if TYPE_CHECKING:
    from pysensorcache.coordinator import DataCoordinator

_logger = logging.getLogger(__name__)

#: Distance from the peak time at which the delay curve tops out.
MAX_DISTANCE = ONE_DAY / 2
#: Growth factor of the delay curve; at ``MAX_DISTANCE`` the extra delay is
#: ``e^8.15`` seconds, about 58 minutes.
_GROWTH = 8.15


class PeakSchedule:
    """Time-of-day delay curve centered on a peak time.

    Parameters
    ----------
    peak_time_of_day : float
        Seconds after UTC midnight at which polling is most frequent.
    base_delay : float
        Delay at the peak itself, on top of a one-second minimum increase.
    """

    def __init__(self, peak_time_of_day: float, *, base_delay: float = REPORTING_INTERVAL) -> None:
        self.peak_time_of_day = peak_time_of_day
        self.base_delay = base_delay

    def distance_from_peak(self, ts: float) -> float:
        since_midnight = ts % ONE_DAY
        return min(
            abs(since_midnight - self.peak_time_of_day),
            abs(since_midnight - self.peak_time_of_day + ONE_DAY),
            abs(since_midnight - self.peak_time_of_day - ONE_DAY),
        )

    def delay_at_distance(self, distance: float) -> int:
        delay = self.base_delay + math.exp(_GROWTH * distance / MAX_DISTANCE)
        return math.floor(delay)

    def delay_at_time(self, ts: float | None = None) -> int:
        return self.delay_at_distance(self.distance_from_peak(time.time() if ts is None else ts))


class Poller:
    """Runs *fetch* forever, sleeping *delay()* seconds between runs.

    A failing fetch is logged and the loop carries on after the usual delay.
    Sleeping goes through *clock*, so the poller keeps the same time as the
    coordinator it drives.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Any]],
        delay: Callable[[], float],
        *,
        clock: Clock | None = None,
    ) -> None:
        self._fetch = fetch
        self._delay = delay
        self._clock = clock or LoopClock()
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def for_coordinator(
        cls,
        coordinator: DataCoordinator,
        uuid: str | None = None,
        period: float = ONE_DAY,
        schedule: PeakSchedule | None = None,
    ) -> Poller:
        """Poller refreshing *uuid* through *coordinator*, paced by its quota.

        With a *schedule* the longer of the pacer delay and the schedule's
        delay is used.
        """

        async def _fetch() -> None:
            await coordinator.refresh(uuid, period)

        def _delay() -> float:
            delay = coordinator.pacer.delay()
            if schedule is not None:
                delay = max(delay, schedule.delay_at_time(coordinator.clock.now()))
            return delay

        return cls(_fetch, _delay, clock=coordinator.clock)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        _logger.debug("Starting poller")
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        _logger.debug("Stopping poller")
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def tick(self) -> float:
        """Run one fetch and return the delay before the next one."""
        _logger.debug("Running fetch")
        try:
            await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            _logger.warning("Fetch failed: %s", exc)
            _logger.debug("Fetch failure details", exc_info=True)
        delay = self._delay()
        _logger.debug("Delaying for %.0fs", delay)
        return delay

    async def _run(self) -> None:
        while True:
            delay = await self.tick()
            await self._sleep(delay)

    async def _sleep(self, delay: float) -> None:
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def _wake() -> None:
            if not waiter.done():
                waiter.set_result(None)

        handle = self._clock.call_later(delay, _wake)
        try:
            await waiter
        finally:
            handle.cancel()
