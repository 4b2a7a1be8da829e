"""Request coordination between consumers, the local store and the remote API.

One :class:`DataCoordinator` is constructed per server instance and handed
to whatever answers consumer queries.  It owns the store, the quota state,
the pacer and the request cache, so nothing here is module-level state.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable
from typing import Any

from pysensorcache._clock import Clock, LoopClock
from pysensorcache._constants import MIN_AVERAGE_BY
from pysensorcache._transport import ApiResponse
from pysensorcache.cache import ExpiringCache
from pysensorcache.client import FoobotClient
from pysensorcache.config import SensorConfig
from pysensorcache.exceptions import ConfigError, DeviceNotFoundError, QuotaExceededError
from pysensorcache.models.device import Device
from pysensorcache.models.quota import QuotaState
from pysensorcache.models.series import Series
from pysensorcache.pacer import QuotaPacer
from pysensorcache.resample import resample
from pysensorcache.store.timeseries import MergeStats, TimeSeriesStore

_logger = logging.getLogger(__name__)

_DEVICES_KEY = ("devices",)


class DataCoordinator:
    """Serves datapoint and device queries with as few remote requests as possible.

    Identical concurrent queries share one load through the request cache,
    and every fetch for a device goes through a single per-device cache key
    so merges into the store never interleave.

    Parameters
    ----------
    client : FoobotClient
        Initialized API client.
    config : SensorConfig, optional
        Defaults to the client's configuration.
    clock : Clock, optional
        Time source shared by the pacer, the cache and coverage checks.
    """

    def __init__(
        self,
        client: FoobotClient,
        *,
        config: SensorConfig | None = None,
        clock: Clock | None = None,
        store: TimeSeriesStore | None = None,
        quota: QuotaState | None = None,
    ) -> None:
        self._client = client
        self._config = config or client.config
        self._clock = clock or LoopClock()
        self._store = store or TimeSeriesStore(max_connected_distance=self._config.max_connected_distance)
        self._quota = quota or QuotaState(
            reset_time_of_day=self._config.reset_time_of_day,
            daily_target=self._config.daily_target,
        )
        self._pacer = QuotaPacer(self._quota, clock=self._clock)
        self._cache: ExpiringCache[tuple[Any, ...], asyncio.Future[Any]] = ExpiringCache(clock=self._clock)
        # Local send time of the last successful fetch per device.
        self._last_fetch: dict[str, float] = {}
        self._remove_response_listener = client.add_response_listener(self._on_response)
        self._remove_expire_listener = self._cache.add_expire_listener(self._on_expire)

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def store(self) -> TimeSeriesStore:
        return self._store

    @property
    def quota(self) -> QuotaState:
        return self._quota

    @property
    def pacer(self) -> QuotaPacer:
        return self._pacer

    @property
    def cache(self) -> ExpiringCache[tuple[Any, ...], asyncio.Future[Any]]:
        return self._cache

    def close(self) -> None:
        """Drop cached requests (cancelling their timers) and detach from the client."""
        self._remove_response_listener()
        self._remove_expire_listener()
        self._cache.clear()

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _on_response(self, response: ApiResponse) -> None:
        if self._quota.observe(response.requested_at, response.quota_remaining):
            _logger.debug("Quota observed remaining=%s at=%.0f", response.quota_remaining, response.requested_at)
        else:
            _logger.debug("Ignoring out-of-order quota observation at=%.0f", response.requested_at)

    def _on_expire(self, key: Any, _value: Any) -> None:
        _logger.debug("Cache entry expired key=%r", key)

    def _resolve_uuid(self, uuid: str | None) -> str:
        resolved = uuid or self._config.default_device
        if not resolved:
            raise ConfigError("No device uuid given and no default device configured (FOOBOT_DEFAULT_DEVICE)")
        return resolved

    def _share(self, key: tuple[Any, ...], factory: Awaitable[Any], ttl: Any) -> asyncio.Future[Any]:
        """Start *factory* as a cached task under *key*.

        A failed task is evicted as soon as it settles so the next caller
        retries instead of receiving the same error.
        """
        task = asyncio.ensure_future(factory)

        def _evict_failed(done: asyncio.Future[Any]) -> None:
            if (done.cancelled() or done.exception() is not None) and self._cache.get(key) is done:
                self._cache.delete(key)

        task.add_done_callback(_evict_failed)
        self._cache.set(key, task, ttl=ttl)
        return task

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def _devices_ttl(self, _key: Any, task: asyncio.Future[list[Device]]) -> float:
        await asyncio.shield(task)
        return self._pacer.distance_from_reset()

    async def get_devices(self) -> list[Device]:
        """Devices of the configured account, cached until the next quota reset."""
        task = self._cache.get(_DEVICES_KEY)
        if task is None:
            task = self._share(_DEVICES_KEY, self._client.get_devices(), self._devices_ttl)
        return list(await asyncio.shield(task))

    async def get_device(self, uuid: str | None = None) -> Device:
        uuid = self._resolve_uuid(uuid)
        for device in await self.get_devices():
            if device.uuid == uuid:
                return device
        raise DeviceNotFoundError(uuid)

    # ------------------------------------------------------------------
    # Datapoints
    # ------------------------------------------------------------------

    async def _datapoints_ttl(self, _key: Any, task: asyncio.Future[Series]) -> float:
        series = await asyncio.shield(task)
        now = self._clock.now()
        # Nothing new can be served before the next reading exists and the
        # pacer allows fetching it.
        fresh_until = max(series.expires_at or now, self._pacer.next_request_time(now))
        return max(0.0, fresh_until - now)

    async def get_datapoints(self, uuid: str | None = None, period: float = 0, average_by: int = 0) -> Series:
        """Readings of the last *period* seconds, optionally averaged.

        ``period`` of ``0`` asks for the latest reading only (one reporting
        interval).  ``average_by`` of ``300`` or more returns
        ``average_by``-second averages computed from raw stored data, so
        every resolution is served from the same cached readings.
        """
        uuid = self._resolve_uuid(uuid)
        period = period or self._config.reporting_interval
        key = ("datapoints", uuid, period, average_by)
        task = self._cache.get(key)
        if task is None:
            task = self._share(key, self._load_datapoints(uuid, period, average_by), self._datapoints_ttl)
        return await asyncio.shield(task)

    async def refresh(self, uuid: str | None = None, period: float = 0) -> MergeStats:
        """Fetch the last *period* seconds regardless of local coverage."""
        uuid = self._resolve_uuid(uuid)
        period = period or self._config.reporting_interval
        _joined, stats = await self._fetch(uuid, period + self._config.max_connected_distance)
        return stats

    def _covered_until_last(self, uuid: str, period: float, now: float) -> bool:
        """Whether the window is covered up to the newest stored reading."""
        last = self._store.last_timestamp(uuid)
        if last is None or last < now - period:
            return False
        return self._store.coverage(uuid, period - (now - last), last)

    def _tail_not_due(self, uuid: str, period: float, now: float) -> bool:
        """Whether only the newest readings are missing and fetching them now would outpace the quota.

        That holds when the pacer's last request was this device's last fetch:
        everything published until then is stored, and the pacer says wait.
        """
        last_request = self._quota.last_request_time
        return (
            last_request is not None
            and self._last_fetch.get(uuid) == last_request
            and not self._pacer.can_proceed(now)
            and self._covered_until_last(uuid, period, now)
        )

    async def _load_datapoints(self, uuid: str, period: float, average_by: int) -> Series:
        now = self._clock.now()
        slack = self._config.max_connected_distance
        covered = self._store.coverage(uuid, period, now)

        if covered and not self._pacer.can_proceed(now):
            _logger.debug("Serving uuid=%s period=%s from store, next request in %.0fs", uuid, period, self._pacer.delay(now))
        elif covered:
            await self._fetch(uuid, self._since_last(uuid, now) + slack)
        elif self._tail_not_due(uuid, period, now):
            _logger.debug("Newest readings of uuid=%s not due for %.0fs, serving store", uuid, self._pacer.delay(now))
        else:
            if self._quota.exhausted and not self._pacer.can_proceed(now):
                raise QuotaExceededError(
                    f"Request quota exhausted until {self._pacer.next_request_time(now):.0f} "
                    f"and stored data does not cover the last {period}s of {uuid}",
                    quota_remaining=0,
                )
            if self._covered_until_last(uuid, period, now):
                # Only readings newer than what is stored are missing.
                joined, _stats = await self._fetch(uuid, self._since_last(uuid, now) + slack)
            else:
                # Widened so the next window start still has a preceding reading.
                joined, _stats = await self._fetch(uuid, period + slack)
            now = self._clock.now()
            if joined and not self._store.coverage(uuid, period, now) and not self._tail_not_due(uuid, period, now):
                await self._fetch(uuid, period + slack)

        window = self._store.window(uuid, period, self._clock.now())
        if average_by >= MIN_AVERAGE_BY:
            return resample(window, period, average_by)
        return window

    async def _fetch(self, uuid: str, period: float) -> tuple[bool, MergeStats]:
        """Fetch and merge, or join a fetch already running for *uuid*.

        Returns whether an in-flight fetch was joined, and its merge stats.
        """
        key = ("fetch", uuid)
        task = self._cache.get(key)
        if task is not None:
            _logger.debug("Joining in-flight fetch uuid=%s", uuid)
            return True, await asyncio.shield(task)

        task = asyncio.ensure_future(self._fetch_and_merge(uuid, math.ceil(period)))

        def _release(done: asyncio.Future[Any]) -> None:
            if self._cache.get(key) is done:
                self._cache.delete(key)

        task.add_done_callback(_release)
        self._cache.set(key, task, ttl=None)
        return False, await asyncio.shield(task)

    def _since_last(self, uuid: str, now: float) -> float:
        last = self._store.last_timestamp(uuid)
        return 0.0 if last is None else max(0.0, now - last)

    async def _fetch_and_merge(self, uuid: str, period: int) -> MergeStats:
        _logger.debug("Fetching uuid=%s period=%ds", uuid, period)
        result = await self._client.get_datapoints(uuid, period=period, average_by=0)
        stats = self._store.merge(uuid, result.series)
        self._last_fetch[uuid] = result.requested_at
        return stats
