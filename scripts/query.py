#!/usr/bin/env python3
"""Query a sensor through the quota-aware coordinator.

Usage
-----
::

    export FOOBOT_API_KEY="..."
    export FOOBOT_USERNAME="you@example.com"
    python scripts/query.py --period 3600 --average-by 900

Options::

    --uuid UUID          Device to query (default: FOOBOT_DEFAULT_DEVICE or first device)
    --period SECS        Seconds of history to return (default: 3600)
    --average-by SECS    Bucket size for averaging, 0 for raw readings (default: 0)
    --watch SECS         Keep polling for SECS seconds and print the store size
    --json               Output machine-readable JSON
    --verbose / -v       Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pysensorcache import DataCoordinator, FoobotClient, PeakSchedule, Poller, SensorCacheError, SensorConfig  # noqa: E402
from pysensorcache.models import Series  # noqa: E402


def _fmt_time(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts, UTC).strftime("%Y-%m-%d %H:%M:%S")


def _print_series(series: Series) -> None:
    print(f"Device {series.uuid}: {len(series.datapoints)} reading(s) {_fmt_time(series.start)} .. {_fmt_time(series.end)}")
    header = [f"{name} ({unit})" for name, unit in zip(series.sensors, series.units, strict=False)]
    print("  " + " | ".join(header))
    for row in series.datapoints:
        print("  " + " | ".join([_fmt_time(row[0]), *(f"{value:g}" for value in row[1:])]))


async def main() -> None:
    parser = argparse.ArgumentParser(description="Query sensor readings with local caching and quota pacing.")
    parser.add_argument("--uuid", help="Device uuid (default: configured or first device)")
    parser.add_argument("--period", type=float, default=3600, help="Seconds of history (default: 3600)")
    parser.add_argument("--average-by", type=int, default=0, help="Averaging bucket in seconds (default: 0)")
    parser.add_argument("--watch", type=float, default=0, help="Keep polling for SECS seconds")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    config = SensorConfig.from_env()
    async with FoobotClient(config) as client:
        coordinator = DataCoordinator(client)
        try:
            uuid = args.uuid or config.default_device
            if not uuid:
                devices = await coordinator.get_devices()
                if not devices:
                    print("No devices registered to this account.", file=sys.stderr)
                    return
                uuid = devices[0].uuid

            series = await coordinator.get_datapoints(uuid, args.period, args.average_by)
            if args.json_mode:
                print(json.dumps(series.model_dump(mode="json"), indent=2))
            else:
                _print_series(series)
                print(
                    f"\nQuota: remaining={coordinator.quota.last_observed_remaining} "
                    f"next request in {coordinator.pacer.delay():.0f}s"
                )

            if args.watch > 0:
                poller = Poller.for_coordinator(
                    coordinator, uuid, period=args.period, schedule=PeakSchedule(config.peak_time_of_day)
                )
                poller.start()
                try:
                    await asyncio.sleep(args.watch)
                finally:
                    await poller.stop()
                stored = coordinator.store.get(uuid)
                print(f"Stored readings after watching: {len(stored.datapoints) if stored else 0}")
        except SensorCacheError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        finally:
            coordinator.close()


if __name__ == "__main__":
    asyncio.run(main())
