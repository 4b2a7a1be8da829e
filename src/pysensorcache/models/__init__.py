"""Data models for sensor API responses and cache state."""

from pysensorcache.models.device import Device
from pysensorcache.models.quota import QuotaState
from pysensorcache.models.series import Datapoint, Series, empty_series

__all__ = [
    "Datapoint",
    "Device",
    "QuotaState",
    "Series",
    "empty_series",
]
