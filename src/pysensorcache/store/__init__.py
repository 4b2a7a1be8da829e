"""Store layer.

The single source of truth for readings fetched from the remote API.
"""

from pysensorcache.store.timeseries import MergeStats, TimeSeriesStore

__all__ = ["MergeStats", "TimeSeriesStore"]
