#!/usr/bin/env python3
"""Compare the API's own averaging with the local resampler.

Costs two requests: one averaged by the API, one raw series that is then
averaged locally.  Rows that differ are printed side by side.

Usage
-----
::

    export FOOBOT_API_KEY="..."
    python scripts/compare_average.py --uuid 240D676D40002482 --period 86400 --average-by 3600
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pysensorcache import FoobotClient, SensorConfig, resample  # noqa: E402


async def main() -> None:
    parser = argparse.ArgumentParser(description="Compare API averages with locally computed ones.")
    parser.add_argument("--uuid", help="Device uuid (default: FOOBOT_DEFAULT_DEVICE)")
    parser.add_argument("--period", type=int, default=86400, help="Seconds of history (default: 86400)")
    parser.add_argument("--average-by", type=int, default=3600, help="Averaging bucket in seconds (default: 3600)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    config = SensorConfig.from_env()
    async with FoobotClient(config) as client:
        remote = await client.get_datapoints(args.uuid, period=args.period, average_by=args.average_by)
        raw = await client.get_datapoints(args.uuid, period=args.period, average_by=0)

    local = resample(raw.series, args.period, args.average_by)
    remote_rows = {int(row[0]): row for row in remote.series.datapoints}
    local_rows = {int(row[0]): row for row in local.datapoints}

    mismatches = 0
    for ts in sorted(remote_rows.keys() | local_rows.keys()):
        r = remote_rows.get(ts)
        loc = local_rows.get(ts)
        if r != loc:
            mismatches += 1
            print(f"{ts}: api={r} local={loc}")

    print(f"{len(remote_rows)} API row(s), {len(local_rows)} local row(s), {mismatches} mismatch(es)")
    print(f"Quota remaining: {raw.quota_remaining}")


if __name__ == "__main__":
    asyncio.run(main())
