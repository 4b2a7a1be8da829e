"""Local reproduction of the API's ``average_by`` downsampling.

Requesting averaged data from the API costs a request from the daily
quota.  Instead we keep the highest-resolution data and average it
ourselves, which lets any ``average_by`` be served from data already in the
store.  Bucketing and rounding follow the API's own conventions as closely
as we have been able to observe them.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Context, Decimal

from pysensorcache._constants import MIN_AVERAGE_BY
from pysensorcache.models.series import Datapoint, Series

_logger = logging.getLogger(__name__)

#: The API reports averaged values with 9 significant digits.
SIGNIFICANT_DIGITS = 9

_ROUNDING = Context(prec=SIGNIFICANT_DIGITS, rounding=ROUND_HALF_UP)


def bucketize(datapoints: Sequence[Datapoint], period: float, average_by: int | None) -> list[list[Datapoint]]:
    """Group *datapoints* into ``average_by``-second buckets.

    Buckets are laid out backwards from the last reading so that the final
    bucket ends exactly on it.  Every member of a bucket is re-timestamped to
    the bucket's start, which is the timestamp the API reports for an
    averaged row.  Buckets that end up empty are dropped.

    Raises :class:`ValueError` for a negative *average_by*; ``0`` or
    ``None`` means the reporting interval.
    """
    bucket_size = average_by or MIN_AVERAGE_BY
    if bucket_size <= 0:
        raise ValueError(f"average_by must be positive, got {average_by}")
    if not datapoints:
        return []
    last_time = datapoints[-1][0]
    cutoff = last_time - period + bucket_size

    bucket: list[Datapoint] = []
    buckets = [bucket]
    index = 0
    while index < len(datapoints):
        row = datapoints[index]
        if row[0] <= cutoff:
            bucket.append([int(cutoff - bucket_size), *row[1:]])
            index += 1
        else:
            cutoff += bucket_size
            bucket = []
            buckets.append(bucket)

    result = [b for b in buckets if b]
    _logger.debug("Bucketizing resulted in %d bucket(s) (%d removed)", len(result), len(buckets) - len(result))
    return result


def average(values: Sequence[float]) -> float:
    """Mean of *values* rounded to 9 significant digits.

    Summation happens in :class:`~decimal.Decimal` so long series do not
    accumulate binary floating point error.  An empty input averages to
    ``0``.
    """
    if not values:
        return 0
    total = sum((Decimal(repr(float(value))) for value in values), Decimal(0))
    mean = total / len(values)
    return float(_ROUNDING.plus(mean))


def average_bucket(bucket: Sequence[Datapoint]) -> Datapoint:
    """Collapse a bucket into one row: shared timestamp, per-column means."""
    if not bucket:
        return []
    first = bucket[0]
    row: Datapoint = [first[0]]
    for column in range(1, len(first)):
        row.append(average([member[column] for member in bucket]))
    return row


def resample(series: Series, period: float, average_by: int | None) -> Series:
    """Return *series* downsampled into ``average_by``-second averages."""
    _logger.debug("Averaging dataset uuid=%s period=%s average_by=%s", series.uuid, period, average_by)
    datapoints = [average_bucket(bucket) for bucket in bucketize(series.datapoints, period, average_by)]
    return series.model_copy(
        update={
            "datapoints": datapoints,
            "start": int(datapoints[0][0]) if datapoints else None,
            "end": int(datapoints[-1][0]) if datapoints else None,
        }
    )
