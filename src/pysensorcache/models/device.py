"""Device metadata model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class Device(BaseModel):
    """A sensor registered to the account.

    Parameters
    ----------
    uuid : str
        Stable device identifier used by every datapoint endpoint.
    name : str or None
        User-assigned display name.
    mac : str or None
        Hardware address.
    user_id : int or None
        Owning account id.
    raw : dict
        Full API response dict.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    uuid: str
    name: str | None = None
    mac: str | None = None
    user_id: int | None = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    raw: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _ensure_raw(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        merged.setdefault("raw", values)
        return merged
