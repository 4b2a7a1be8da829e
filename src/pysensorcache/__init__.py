"""pysensorcache - Quota-aware async cache for a rate-limited sensor time-series API."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pysensorcache")
except PackageNotFoundError:
    __version__ = "0+local"
from pysensorcache._clock import Clock, LoopClock
from pysensorcache.cache import ExpiringCache
from pysensorcache.client import FetchResult, FoobotClient
from pysensorcache.config import SensorConfig
from pysensorcache.coordinator import DataCoordinator
from pysensorcache.exceptions import (
    ApiError,
    AuthenticationError,
    ConfigError,
    DeviceNotFoundError,
    QuotaExceededError,
    SensorCacheError,
    TransportError,
)
from pysensorcache.models import Datapoint, Device, QuotaState, Series, empty_series
from pysensorcache.pacer import QuotaPacer
from pysensorcache.poller import PeakSchedule, Poller
from pysensorcache.resample import average, bucketize, resample
from pysensorcache.store import MergeStats, TimeSeriesStore

__all__ = [
    "__version__",
    "ApiError",
    "AuthenticationError",
    "Clock",
    "ConfigError",
    "DataCoordinator",
    "Datapoint",
    "Device",
    "DeviceNotFoundError",
    "ExpiringCache",
    "FetchResult",
    "FoobotClient",
    "LoopClock",
    "MergeStats",
    "PeakSchedule",
    "Poller",
    "QuotaExceededError",
    "QuotaPacer",
    "QuotaState",
    "SensorCacheError",
    "SensorConfig",
    "Series",
    "TimeSeriesStore",
    "TransportError",
    "average",
    "bucketize",
    "empty_series",
    "resample",
]
