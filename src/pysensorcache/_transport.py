"""HTTP transport with API-key authentication and quota header tracking."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Any, Protocol

import aiohttp

from pysensorcache._clock import Clock, LoopClock
from pysensorcache._constants import API_KEY_HEADER, QUOTA_REMAINING_HEADER, USER_AGENT
from pysensorcache.config import SensorConfig
from pysensorcache.exceptions import ApiError, AuthenticationError, QuotaExceededError, TransportError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ApiResponse:
    """Decoded response plus the metadata the pacer cares about.

    ``requested_at`` is the local time the request was sent, which is what
    quota observations are ordered by.  ``server_date`` is the response's
    ``Date`` header in epoch seconds (``None`` when absent or unparseable).
    """

    body: Any
    status: int
    requested_at: float
    server_date: float | None = None
    quota_remaining: int | None = None


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Tests pass fake backends implementing this protocol instead of a real
    ``HttpTransport``.
    """

    async def get_json(self, endpoint: str) -> ApiResponse:
        ...


def _parse_quota(headers: Any) -> int | None:
    value = headers.get(QUOTA_REMAINING_HEADER)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        _logger.debug("Ignoring unparseable %s header: %r", QUOTA_REMAINING_HEADER, value)
        return None


def _parse_date(headers: Any) -> float | None:
    value = headers.get("Date")
    if not value:
        return None
    try:
        return parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError):
        return None


class HttpTransport:
    """aiohttp-backed transport for the sensor API."""

    def __init__(
        self,
        config: SensorConfig,
        http_session: aiohttp.ClientSession,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._clock = clock or LoopClock()
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self) -> dict[str, str]:
        return {
            "accept": "application/json;charset=UTF-8",
            "user-agent": USER_AGENT,
            API_KEY_HEADER: self._config.api_key,
        }

    async def get_json(self, endpoint: str) -> ApiResponse:
        """GET *endpoint* and decode its JSON body.

        Raises
        ------
        TransportError
            Network failure, timeout or a body that is not JSON.
        AuthenticationError
            HTTP 401/403.
        QuotaExceededError
            HTTP 429.
        ApiError
            Any other status outside 2xx/3xx.
        """
        url = f"{self._config.base_url}{endpoint}"
        requested_at = self._clock.now()
        _logger.debug("GET %s", url)

        try:
            async with self._http.get(url, headers=self._headers(), timeout=self._timeout) as resp:
                text = await resp.text()
                status = resp.status
                quota_remaining = _parse_quota(resp.headers)
                server_date = _parse_date(resp.headers)
        except TimeoutError as exc:
            raise TransportError(f"Request to {endpoint} timed out", endpoint=endpoint) from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"Request to {endpoint} failed: {exc}", endpoint=endpoint) from exc

        _logger.debug("Received response status=%d quota_remaining=%s endpoint=%s", status, quota_remaining, endpoint)

        if not 200 <= status < 400:
            message = f"HTTP {status} from {endpoint}: {text[:200]}"
            error_cls: type[ApiError] = ApiError
            if status in (401, 403):
                error_cls = AuthenticationError
            elif status == 429:
                error_cls = QuotaExceededError
            raise error_cls(message, status_code=status, endpoint=endpoint, quota_remaining=quota_remaining)

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise TransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

        return ApiResponse(
            body=body,
            status=status,
            requested_at=requested_at,
            server_date=server_date,
            quota_remaining=quota_remaining,
        )
