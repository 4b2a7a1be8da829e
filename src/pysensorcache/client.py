"""High-level async client for the sensor API."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import aiohttp

from pysensorcache._api.datapoints import fetch_datapoints
from pysensorcache._api.devices import fetch_devices
from pysensorcache._clock import Clock, LoopClock
from pysensorcache._transport import ApiResponse, HttpTransport, Transport
from pysensorcache.config import SensorConfig
from pysensorcache.exceptions import ConfigError, SensorCacheError
from pysensorcache.models.device import Device
from pysensorcache.models.series import Series

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Outcome of one remote request.

    ``requested_at`` orders quota observations; ``quota_remaining`` is
    ``None`` when the response did not report it.
    """

    series: Series
    quota_remaining: int | None
    requested_at: float


class FoobotClient:
    """Async client for the sensor API.

    Every call costs one request from the daily quota; the client itself
    does no caching or pacing (see :class:`~pysensorcache.coordinator.DataCoordinator`).

    Usage::

        async with FoobotClient(config) as client:
            devices = await client.get_devices()
            result = await client.get_datapoints(devices[0].uuid, period=3600)
    """

    def __init__(
        self,
        config: SensorConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._clock = clock or LoopClock()
        self._transport: Transport | None = transport
        self._response_listeners: list[Callable[[ApiResponse], None]] = []

    @property
    def config(self) -> SensorConfig:
        return self._config

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FoobotClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config, self._http_session, clock=self._clock)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if not self._external_session and self._http_session is not None:
            _logger.debug("Closing HTTP session")
            await self._http_session.close()
            self._http_session = None
            self._transport = None

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise SensorCacheError("Client not initialized. Use 'async with FoobotClient(...) as client:'")
        return self._transport

    def add_response_listener(self, listener: Callable[[ApiResponse], None]) -> Callable[[], None]:
        """Call *listener* with every successfully parsed response.

        Used to track quota metadata across all endpoints.  Returns a
        function that removes the listener again.
        """
        self._response_listeners.append(listener)

        def _remove() -> None:
            if listener in self._response_listeners:
                self._response_listeners.remove(listener)

        return _remove

    def _notify(self, response: ApiResponse) -> None:
        for listener in list(self._response_listeners):
            try:
                listener(response)
            except Exception:
                _logger.debug("Response listener failed", exc_info=True)

    def _resolve_uuid(self, uuid: str | None) -> str:
        resolved = uuid or self._config.default_device
        if not resolved:
            raise ConfigError("No device uuid given and no default device configured (FOOBOT_DEFAULT_DEVICE)")
        return resolved

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_devices(self, username: str | None = None) -> list[Device]:
        """List the devices registered to *username* (default: configured user)."""
        devices, response = await fetch_devices(self._require_transport(), username or self._config.username)
        self._notify(response)
        return devices

    async def get_datapoints(
        self,
        uuid: str | None = None,
        *,
        period: float = 0,
        average_by: int = 0,
        start: datetime | int | float | None = None,
        end: datetime | int | float | None = None,
    ) -> FetchResult:
        """Fetch readings for a device along with the quota left afterwards."""
        series, response = await fetch_datapoints(
            self._config,
            self._require_transport(),
            self._resolve_uuid(uuid),
            period=period,
            average_by=average_by,
            start=start,
            end=end,
        )
        self._notify(response)
        return FetchResult(
            series=series,
            quota_remaining=response.quota_remaining,
            requested_at=response.requested_at,
        )
