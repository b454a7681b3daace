"""Base model for ioBroker wire payloads.

Every payload model inherits from :class:`IobBaseModel` which provides:

* frozen instances that ignore unknown keys, since adapters add fields
  across ioBroker versions.
* A ``raw`` dict that captures the original payload.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_iob_timestamp(value: Any) -> datetime | None:
    """Convert an ioBroker epoch timestamp (milliseconds **or** seconds) to a UTC datetime.

    Returns ``None`` when the value is ``None`` or not numeric.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value
    try:
        ts = float(value)
    except (TypeError, ValueError):
        return None
    if ts >= _MS_THRESHOLD:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)


class IobBaseModel(BaseModel):
    """Base for ioBroker payload models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, repr=False)
    """Original payload dict."""

    @model_validator(mode="before")
    @classmethod
    def _ensure_raw(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        merged.setdefault("raw", values)
        return merged
