"""Custom exception hierarchy for pysensorcache."""

from __future__ import annotations


class SensorCacheError(Exception):
    """Base exception for all pysensorcache errors."""


class ConfigError(SensorCacheError):
    """Invalid or missing configuration."""


class TransportError(SensorCacheError):
    """HTTP-level failure (network error, timeout, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class ApiError(SensorCacheError):
    """The remote API rejected a request (non-success status code)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
        quota_remaining: int | None = None,
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        self.quota_remaining = quota_remaining
        super().__init__(message)


class AuthenticationError(ApiError):
    """API key missing, invalid or not allowed to read the resource (401/403)."""


class QuotaExceededError(ApiError):
    """Daily request quota used up.

    Raised for explicit HTTP 429 responses, and by the coordinator when the
    last observed quota is zero and the local store cannot answer the
    request on its own.
    """


class DeviceNotFoundError(SensorCacheError):
    """No device with the requested uuid is registered to the account."""

    def __init__(self, uuid: str) -> None:
        self.uuid = uuid
        super().__init__(f"Device not found: {uuid}")
