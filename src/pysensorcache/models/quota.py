"""Remote quota bookkeeping."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from pysensorcache._constants import DEFAULT_DAILY_TARGET, ONE_DAY


class QuotaState(BaseModel):
    """What we know about the remote request budget.

    Mutated only through :meth:`observe`, which the coordinator calls after
    every completed fetch.

    Parameters
    ----------
    last_request_time : float or None
        Epoch seconds at which the most recent applied request was sent.
    last_observed_remaining : int or None
        Remaining requests reported alongside that request's response.
    reset_time_of_day : float
        Seconds after UTC midnight at which the remote quota resets.
    daily_target : int
        Requests we allow ourselves per quota period.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    last_request_time: float | None = None
    last_observed_remaining: int | None = Field(default=None, ge=0)
    reset_time_of_day: float = Field(default=0.0, ge=0, lt=ONE_DAY)
    daily_target: int = Field(default=DEFAULT_DAILY_TARGET, gt=0)

    def observe(self, requested_at: float, remaining: int | None) -> bool:
        """Record a completed request.

        Responses can complete out of order; an observation whose request
        was sent before the last applied one carries stale quota
        information and is ignored.  A response without quota metadata
        still advances ``last_request_time``.

        Returns ``True`` when the observation was applied.
        """
        if self.last_request_time is not None and requested_at < self.last_request_time:
            return False
        self.last_request_time = requested_at
        if remaining is not None:
            self.last_observed_remaining = max(0, int(remaining))
        return True

    @property
    def exhausted(self) -> bool:
        return self.last_observed_remaining == 0
