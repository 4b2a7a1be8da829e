"""Device list endpoint.

Endpoint:
  - /v2/owner/{username}/device/
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from pydantic import ValidationError

from pysensorcache._transport import ApiResponse, Transport
from pysensorcache.exceptions import ConfigError, TransportError
from pysensorcache.models.device import Device

_logger = logging.getLogger(__name__)


def parse_devices_response(response: ApiResponse, *, endpoint: str = "") -> list[Device]:
    body = response.body
    if not isinstance(body, list):
        raise TransportError(f"Unexpected device list payload from {endpoint}", endpoint=endpoint)
    devices: list[Device] = []
    for item in body:
        if not isinstance(item, dict):
            continue
        try:
            devices.append(Device.model_validate(item))
        except ValidationError:
            _logger.debug("Skipping malformed device entry keys=%s", list(item.keys()))
    return devices


async def fetch_devices(transport: Transport, username: str | None) -> tuple[list[Device], ApiResponse]:
    """List the devices registered to *username*."""
    if not username:
        raise ConfigError("A username is required to list devices (FOOBOT_USERNAME)")
    endpoint = f"/v2/owner/{quote(username, safe='@.')}/device/"
    response = await transport.get_json(endpoint)
    devices = parse_devices_response(response, endpoint=endpoint)
    _logger.debug("Fetched %d device(s)", len(devices))
    return devices, response
