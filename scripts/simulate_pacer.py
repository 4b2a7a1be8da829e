#!/usr/bin/env python3
"""Simulate one quota period of paced polling without touching the network.

Prints how many requests the pacer allows per hour, optionally combined
with the peak-time schedule, so the effect of ``daily_target`` and the
reset time can be checked before deploying.

Usage
-----
::

    python scripts/simulate_pacer.py --daily-target 200 --peak-time 17 --start-hour 0
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections import Counter
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pysensorcache import PeakSchedule, QuotaPacer, QuotaState  # noqa: E402

_DAY = 86400


class _SimClock:
    def __init__(self, start: float) -> None:
        self.current = start

    def now(self) -> float:
        return self.current

    def call_later(self, *_args: object) -> None:
        raise NotImplementedError("the simulation schedules no timers")


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate quota pacing over one day.")
    parser.add_argument("--daily-target", type=int, default=200, help="Requests per day (default: 200)")
    parser.add_argument("--reset-hour", type=float, default=0, help="UTC hour of the quota reset (default: 0)")
    parser.add_argument("--start-hour", type=float, default=0, help="UTC hour to start at (default: 0)")
    parser.add_argument("--peak-time", type=float, help="Also apply the peak schedule around this UTC hour")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    # Any UTC midnight works as the simulated day.
    day = 20000 * _DAY
    clock = _SimClock(day + args.start_hour * 3600)
    state = QuotaState(reset_time_of_day=args.reset_hour * 3600, daily_target=args.daily_target)
    pacer = QuotaPacer(state, clock=clock)
    schedule = PeakSchedule(args.peak_time * 3600) if args.peak_time is not None else None

    remaining = args.daily_target
    end = clock.current + _DAY
    per_hour: Counter[int] = Counter()
    while clock.current < end:
        if pacer.next_reset_time(state.last_request_time or clock.current) <= clock.current:
            remaining = args.daily_target
        remaining = max(0, remaining - 1)
        state.observe(clock.current, remaining)
        per_hour[int((clock.current - day) // 3600) % 24] += 1

        delay = pacer.delay()
        if schedule is not None:
            delay = max(delay, schedule.delay_at_time(clock.current))
        clock.current += max(delay, 1)

    for hour in sorted(per_hour):
        print(f"{hour:02d}:00  {per_hour[hour]:4d}  {'#' * per_hour[hour]}")
    print(f"total: {sum(per_hour.values())} request(s)")


if __name__ == "__main__":
    main()
