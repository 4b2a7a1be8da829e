"""Quota-aware request pacing.

The API is rate limited: a key gets a fixed number of requests per day
(200 by default), while the device publishes a reading every five minutes,
288 times a day.  Consumers that keep a dashboard open want fresh readings
all day, so requests have to be spread out.

:class:`QuotaPacer` spaces the *remaining* quota evenly over the *remaining*
time until the next reset, based on the quota the API reported with the
previous response.  It loosens right after a reset and tightens as quota is
consumed.  Readings are never dropped: a later fetch widens its period to
include everything published since the previous one.
"""

from __future__ import annotations

import logging
import math

from pysensorcache._clock import Clock, LoopClock
from pysensorcache._constants import ONE_DAY
from pysensorcache.models.quota import QuotaState

_logger = logging.getLogger(__name__)


class QuotaPacer:
    """Decides when another remote request is advisable.

    The pacer only reads *state*; the coordinator updates it after every
    completed request.
    """

    def __init__(self, state: QuotaState, *, clock: Clock | None = None) -> None:
        self._state = state
        self._clock = clock or LoopClock()

    @property
    def state(self) -> QuotaState:
        return self._state

    def _now(self, now: float | None) -> float:
        return self._clock.now() if now is None else now

    def next_reset_time(self, ts: float) -> float:
        """First quota reset strictly after *ts*."""
        day_start = ts - (ts % ONE_DAY)
        reset = day_start + self._state.reset_time_of_day
        while reset <= ts:
            reset += ONE_DAY
        return reset

    def distance_from_reset(self, now: float | None = None) -> float:
        now = self._now(now)
        return self.next_reset_time(now) - now

    def delay_at_limit(self, last_request_time: float | None, remaining: int | None, now: float | None = None) -> int:
        """Seconds to leave between requests given the last observed quota.

        Rounded down to whole seconds so pacing never overshoots the budget
        through rounding.
        """
        if last_request_time is None or remaining is None:
            return 0
        now = self._now(now)
        was_reset = self.next_reset_time(last_request_time) <= now
        target = self._state.daily_target
        limit = target if was_reset else min(target, remaining)
        distance = self.distance_from_reset(now)
        if limit <= 0:
            return math.floor(distance)
        return math.floor(min(distance, distance / limit))

    def next_request_time(self, now: float | None = None) -> float:
        now = self._now(now)
        state = self._state
        if state.last_request_time is None:
            _logger.debug("No previous request")
            return now
        if state.last_observed_remaining == 0:
            _logger.debug("Request limit reached, delaying until next reset")
            return self.next_reset_time(state.last_request_time)
        delay = self.delay_at_limit(state.last_request_time, state.last_observed_remaining, now)
        _logger.debug("Delaying %ds based on previous request", delay)
        return state.last_request_time + delay

    def delay(self, now: float | None = None) -> float:
        """Seconds until the next request may be made (``0`` means now)."""
        now = self._now(now)
        delay = max(0.0, self.next_request_time(now) - now)
        _logger.debug("Next request can be made %s", f"in {delay:.0f}s" if delay else "now")
        return delay

    def can_proceed(self, now: float | None = None) -> bool:
        now = self._now(now)
        return now >= self.next_request_time(now)
