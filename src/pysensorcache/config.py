"""Client and cache configuration for pysensorcache."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pysensorcache._constants import (
    BASE_URL,
    DEFAULT_DAILY_TARGET,
    MAX_CONNECTED_DISTANCE,
    ONE_DAY,
    ONE_HOUR,
    REPORTING_INTERVAL,
)
from pysensorcache.exceptions import ConfigError


@dataclasses.dataclass(frozen=True)
class SensorConfig:
    """Client configuration.

    Parameters
    ----------
    api_key : str
        API key sent as ``x-api-key-token`` on every request.
    username : str or None
        Account owner, required to list devices.
    default_device : str or None
        Device uuid used when a caller does not name one.
    base_url : str
        API base URL.
    request_timeout : float
        Total timeout of a single HTTP request in seconds.
    daily_target : int
        Number of requests we allow ourselves per quota period.  Must not
        exceed the limit the API key actually has.
    reset_time_of_day : float
        Seconds after UTC midnight at which the remote quota resets.
    reporting_interval : int
        Seconds between two device readings.
    max_connected_distance : float
        Largest gap (seconds) between stored readings that still counts as
        uninterrupted coverage.
    peak_time_of_day : float
        Seconds after UTC midnight around which the poller fetches most often.
    """

    api_key: str
    username: str | None = None
    default_device: str | None = None
    base_url: str = BASE_URL
    request_timeout: float = 60.0
    daily_target: int = DEFAULT_DAILY_TARGET
    reset_time_of_day: float = 0.0
    reporting_interval: int = REPORTING_INTERVAL
    max_connected_distance: float = MAX_CONNECTED_DISTANCE
    peak_time_of_day: float = 17 * ONE_HOUR

    def __post_init__(self) -> None:
        if not self.api_key or not self.api_key.strip():
            raise ConfigError(
                "An API key is required. Use the `api_key` option or the FOOBOT_API_KEY environment variable."
            )
        if self.daily_target <= 0:
            raise ConfigError(f"daily_target must be positive, got {self.daily_target}")
        if not 0 <= self.reset_time_of_day < ONE_DAY:
            raise ConfigError(f"reset_time_of_day must be within one day, got {self.reset_time_of_day}")
        if not 0 <= self.peak_time_of_day < ONE_DAY:
            raise ConfigError(f"peak_time_of_day must be within one day, got {self.peak_time_of_day}")
        if self.reporting_interval <= 0:
            raise ConfigError(f"reporting_interval must be positive, got {self.reporting_interval}")
        if self.max_connected_distance < self.reporting_interval:
            raise ConfigError(
                "max_connected_distance must be at least one reporting interval "
                f"({self.max_connected_distance} < {self.reporting_interval})"
            )
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")

    @classmethod
    def from_env(cls, **overrides: Any) -> SensorConfig:
        """Create configuration from environment variables.

        Reads ``FOOBOT_API_KEY`` and the optional ``FOOBOT_*`` variables
        listed below.  Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SensorConfig
            Populated configuration.

        Raises
        ------
        ConfigError
            If a numeric variable cannot be parsed or a value is invalid.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "FOOBOT_API_KEY": "api_key",
            "FOOBOT_USERNAME": "username",
            "FOOBOT_DEFAULT_DEVICE": "default_device",
            "FOOBOT_BASE_URL": "base_url",
        }
        _ENV_NUM_MAP: dict[str, tuple[str, type]] = {
            "FOOBOT_REQUEST_TIMEOUT": ("request_timeout", float),
            "FOOBOT_DAILY_TARGET": ("daily_target", int),
            "FOOBOT_RESET_TIME": ("reset_time_of_day", float),
            "FOOBOT_REPORTING_INTERVAL": ("reporting_interval", int),
            "FOOBOT_MAX_CONNECTED_DISTANCE": ("max_connected_distance", float),
            "FOOBOT_PEAK_TIME": ("peak_time_of_day", float),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val

        for env_key, (field_name, convert) in _ENV_NUM_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = convert(val)
            except ValueError as exc:
                raise ConfigError(f"{env_key} must be a number, got {val!r}") from exc

        config_kwargs.setdefault("api_key", "")
        config_kwargs.update(overrides)

        return cls(**config_kwargs)
