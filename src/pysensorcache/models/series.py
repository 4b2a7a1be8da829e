"""Time-series data model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from pysensorcache._constants import DEFAULT_SENSORS, DEFAULT_UNITS

Datapoint = list[float]
"""One reading: ``[timestamp, value_1, ..., value_k]``.

The timestamp is integer epoch seconds; the remaining columns follow the
order of :attr:`Series.sensors` (minus the leading ``time`` column).
"""


class Series(BaseModel):
    """An ordered run of readings for one device.

    Parameters
    ----------
    uuid : str
        Device identifier.
    sensors : list[str]
        Column names, the first one is always ``time``.
    units : list[str]
        Column units, parallel to ``sensors``.
    datapoints : list[Datapoint]
        Readings in strictly increasing timestamp order.
    start, end : int or None
        First and last timestamps, ``None`` for an empty series.
    fetched_at : float or None
        Wall-clock time the data was produced (server ``Date`` header for
        fetched data, time of the last merge for stored data).
    expires_at : float or None
        Predicted time at which the next reading becomes available.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    uuid: str = ""
    sensors: list[str] = Field(default_factory=lambda: list(DEFAULT_SENSORS))
    units: list[str] = Field(default_factory=lambda: list(DEFAULT_UNITS))
    datapoints: list[Datapoint] = Field(default_factory=list)
    start: int | None = None
    end: int | None = None
    fetched_at: float | None = Field(default=None, validation_alias=AliasChoices("fetched_at", "date"))
    expires_at: float | None = Field(default=None, validation_alias=AliasChoices("expires_at", "expires"))

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        # The API sends ``null`` for missing metadata; fall back to defaults.
        if not isinstance(values, dict):
            return values
        return {key: value for key, value in values.items() if value is not None or key in ("start", "end")}

    @field_validator("datapoints")
    @classmethod
    def _normalize_timestamps(cls, rows: list[Datapoint]) -> list[Datapoint]:
        normalized: list[Datapoint] = []
        for row in rows:
            if not row:
                raise ValueError("datapoint rows must contain a timestamp")
            normalized.append([int(row[0]), *row[1:]])
        return normalized

    @property
    def timestamps(self) -> list[int]:
        return [int(row[0]) for row in self.datapoints]

    def column(self, name: str) -> list[float]:
        """Return all values of the column called *name*."""
        try:
            index = self.sensors.index(name)
        except ValueError:
            raise KeyError(name) from None
        return [row[index] for row in self.datapoints]

    def unit(self, name: str) -> str:
        try:
            return self.units[self.sensors.index(name)]
        except ValueError:
            raise KeyError(name) from None


def empty_series(uuid: str = "") -> Series:
    """Well-formed series with no readings and the default column layout."""
    return Series(uuid=uuid, start=None, end=None)
