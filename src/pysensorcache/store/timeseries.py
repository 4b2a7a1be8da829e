"""In-memory per-device time-series store.

This is the only component allowed to mutate stored readings.  Callers
receive copies; incoming batches are folded in with :meth:`TimeSeriesStore.merge`.
"""

from __future__ import annotations

import bisect
import logging
from collections.abc import Iterator

from pydantic import BaseModel, ConfigDict, Field

from pysensorcache._constants import DEFAULT_SENSORS, DEFAULT_UNITS, MAX_CONNECTED_DISTANCE
from pysensorcache.models.series import Datapoint, Series, empty_series

_logger = logging.getLogger(__name__)


class MergeStats(BaseModel):
    """How an incoming batch was folded into a stored series."""

    model_config = ConfigDict(frozen=True)

    prepended: int = 0
    inserted: int = 0
    appended: int = 0
    skipped: int = 0

    @property
    def added(self) -> int:
        return self.prepended + self.inserted + self.appended


class StoredSeries(BaseModel):
    model_config = ConfigDict(extra="forbid")

    uuid: str
    sensors: list[str] = Field(default_factory=lambda: list(DEFAULT_SENSORS))
    units: list[str] = Field(default_factory=lambda: list(DEFAULT_UNITS))
    datapoints: list[Datapoint] = Field(default_factory=list)
    # Parallel to datapoints, kept for bisecting.
    timestamps: list[int] = Field(default_factory=list)
    fetched_at: float | None = None
    expires_at: float | None = None


def _sorted_unique(datapoints: list[Datapoint]) -> list[Datapoint]:
    """Order an incoming batch, keeping the first row for a repeated timestamp."""
    seen: set[int] = set()
    result: list[Datapoint] = []
    for row in sorted(datapoints, key=lambda r: r[0]):
        ts = int(row[0])
        if ts in seen:
            continue
        seen.add(ts)
        result.append(row)
    return result


class TimeSeriesStore:
    """Ordered, duplicate-free readings per device.

    Parameters
    ----------
    max_connected_distance : float
        Largest gap in seconds between consecutive readings that still
        counts as uninterrupted data for :meth:`coverage`.
    """

    def __init__(self, *, max_connected_distance: float = MAX_CONNECTED_DISTANCE) -> None:
        self._max_connected_distance = max_connected_distance
        self._series: dict[str, StoredSeries] = {}

    def __contains__(self, uuid: object) -> bool:
        return uuid in self._series

    def sources(self) -> Iterator[str]:
        return iter(list(self._series))

    def _stored(self, uuid: str) -> StoredSeries:
        stored = self._series.get(uuid)
        if stored is None:
            stored = StoredSeries(uuid=uuid)
            self._series[uuid] = stored
        return stored

    def merge(self, uuid: str, series: Series) -> MergeStats:
        """Fold *series* into the stored readings for *uuid*.

        Existing readings win over incoming ones with the same timestamp, so
        merging a batch twice leaves the store unchanged.  Column metadata
        and ``fetched_at``/``expires_at`` are refreshed on every call, even
        when no reading was added.
        """
        stored = self._stored(uuid)
        stored.sensors = list(series.sensors)
        stored.units = list(series.units)
        stored.fetched_at = series.fetched_at
        stored.expires_at = series.expires_at

        existing = stored.datapoints
        timestamps = stored.timestamps
        first = timestamps[0] if timestamps else None
        prepended = inserted = appended = skipped = 0
        j = 0
        for row in _sorted_unique(series.datapoints):
            ts = int(row[0])
            while j < len(timestamps) and timestamps[j] < ts:
                j += 1
            if j >= len(timestamps):
                existing.append(list(row))
                timestamps.append(ts)
                appended += 1
            elif ts < timestamps[j]:
                existing.insert(j, list(row))
                timestamps.insert(j, ts)
                if first is not None and ts < first:
                    prepended += 1
                else:
                    inserted += 1
            else:
                skipped += 1
            j += 1

        stats = MergeStats(prepended=prepended, inserted=inserted, appended=appended, skipped=skipped)
        _logger.debug(
            "Merged datapoints uuid=%s prepended=%d inserted=%d appended=%d skipped=%d total=%d",
            uuid,
            prepended,
            inserted,
            appended,
            skipped,
            len(existing),
        )
        return stats

    def coverage(self, uuid: str, period: float, now: float) -> bool:
        """Whether ``[now - period, now]`` is covered without a disqualifying gap.

        The check is conservative: stored data that starts inside the window
        does not cover it, and neither does a gap wider than
        ``max_connected_distance`` anywhere from the window start up to
        *now*, including the time since the newest reading.
        """
        stored = self._series.get(uuid)
        if stored is None or not stored.timestamps:
            return False
        timestamps = stored.timestamps
        cutoff = now - period
        index = bisect.bisect_left(timestamps, cutoff)
        if index >= len(timestamps):
            return False

        if timestamps[index] == cutoff:
            previous = timestamps[index]
        elif index == 0:
            _logger.debug("Coverage miss uuid=%s: data begins %ds after window start", uuid, timestamps[0] - cutoff)
            return False
        else:
            previous = timestamps[index - 1]

        for ts in timestamps[index:]:
            if ts - previous > self._max_connected_distance:
                _logger.debug("Coverage miss uuid=%s: %ds gap before %d", uuid, ts - previous, ts)
                return False
            previous = ts
        if now - previous > self._max_connected_distance:
            _logger.debug("Coverage miss uuid=%s: newest reading is %ds old", uuid, now - previous)
            return False
        return True

    def window(self, uuid: str, period: float, now: float) -> Series:
        """Readings with timestamp ``>= now - period``, as a detached series."""
        stored = self._series.get(uuid)
        if stored is None or not stored.datapoints:
            return empty_series(uuid)
        index = bisect.bisect_left(stored.timestamps, now - period)
        rows = [list(row) for row in stored.datapoints[index:]]
        return Series(
            uuid=uuid,
            sensors=list(stored.sensors),
            units=list(stored.units),
            datapoints=rows,
            start=int(rows[0][0]) if rows else None,
            end=int(rows[-1][0]) if rows else None,
            fetched_at=stored.fetched_at,
            expires_at=stored.expires_at,
        )

    def get(self, uuid: str) -> Series | None:
        """Everything stored for *uuid*, or ``None`` if nothing was merged yet."""
        stored = self._series.get(uuid)
        if stored is None:
            return None
        rows = [list(row) for row in stored.datapoints]
        return Series(
            uuid=uuid,
            sensors=list(stored.sensors),
            units=list(stored.units),
            datapoints=rows,
            start=int(rows[0][0]) if rows else None,
            end=int(rows[-1][0]) if rows else None,
            fetched_at=stored.fetched_at,
            expires_at=stored.expires_at,
        )

    def last_timestamp(self, uuid: str) -> int | None:
        stored = self._series.get(uuid)
        if stored is None or not stored.timestamps:
            return None
        return stored.timestamps[-1]
