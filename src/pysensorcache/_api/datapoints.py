"""Datapoint endpoints.

Endpoints:
  - /v2/device/{uuid}/datapoint/{period}/last/{average_by}/
  - /v2/device/{uuid}/datapoint/{start}/{end}/{average_by}/
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from urllib.parse import quote

from pydantic import ValidationError

from pysensorcache._transport import ApiResponse, Transport
from pysensorcache.config import SensorConfig
from pysensorcache.exceptions import TransportError
from pysensorcache.models.series import Series

_logger = logging.getLogger(__name__)


def _format_time(value: datetime | int | float) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S")
    return str(int(value))


def build_datapoints_path(
    uuid: str,
    *,
    period: float = 0,
    average_by: int = 0,
    start: datetime | int | float | None = None,
    end: datetime | int | float | None = None,
) -> str:
    """Build the request path for a datapoint query.

    A ``start``/``end`` pair selects an absolute range, otherwise the last
    *period* seconds are requested.
    """
    device = quote(uuid, safe="")
    if start is not None and end is not None:
        return f"/v2/device/{device}/datapoint/{_format_time(start)}/{_format_time(end)}/{int(average_by)}/"
    return f"/v2/device/{device}/datapoint/{math.ceil(period)}/last/{int(average_by)}/"


def parse_datapoints_response(
    uuid: str,
    response: ApiResponse,
    *,
    reporting_interval: float,
    endpoint: str = "",
) -> Series:
    """Turn a datapoint response into a :class:`Series`.

    ``fetched_at`` is the server's ``Date`` header (local request time as a
    fallback) and ``expires_at`` is one reporting interval after the last
    reading, when the device is expected to publish the next one.
    """
    body = response.body
    if not isinstance(body, dict):
        raise TransportError(f"Unexpected datapoint payload from {endpoint}", endpoint=endpoint)
    try:
        series = Series.model_validate({"uuid": uuid, **body})
    except ValidationError as exc:
        raise TransportError(f"Malformed datapoint payload from {endpoint}: {exc}", endpoint=endpoint) from exc

    fetched_at = response.server_date if response.server_date is not None else response.requested_at
    end = series.end
    if series.datapoints:
        end = int(series.datapoints[-1][0])
    expires_at = end + reporting_interval if end is not None else fetched_at
    return series.model_copy(update={"fetched_at": fetched_at, "expires_at": expires_at})


async def fetch_datapoints(
    config: SensorConfig,
    transport: Transport,
    uuid: str,
    *,
    period: float = 0,
    average_by: int = 0,
    start: datetime | int | float | None = None,
    end: datetime | int | float | None = None,
) -> tuple[Series, ApiResponse]:
    """Fetch readings for a device.

    Parameters
    ----------
    config : SensorConfig
        Client configuration.
    transport : Transport
        HTTP transport.
    uuid : str
        Device identifier.
    period : float
        Seconds back from now, ignored when ``start`` and ``end`` are given.
    average_by : int
        ``0`` for raw readings, or a bucket size in seconds (multiples of
        3600 for long ranges).

    Returns
    -------
    tuple[Series, ApiResponse]
        Parsed readings and the raw response (for quota metadata).

    Raises
    ------
    SensorCacheError
        If the request fails or the payload cannot be parsed.
    """
    endpoint = build_datapoints_path(uuid, period=period, average_by=average_by, start=start, end=end)
    response = await transport.get_json(endpoint)
    series = parse_datapoints_response(
        uuid,
        response,
        reporting_interval=config.reporting_interval,
        endpoint=endpoint,
    )
    _logger.debug("Fetched %d datapoint(s) uuid=%s start=%s end=%s", len(series.datapoints), uuid, series.start, series.end)
    return series, response
