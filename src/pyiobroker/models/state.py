"""ioBroker state value model."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from pyiobroker.models._base import IobBaseModel, parse_iob_timestamp

StateValue = str | int | float | bool | dict[str, Any] | list[Any] | None


class IobState(IobBaseModel):
    """Value of an ioBroker state as pushed by ``stateChange`` or ``getState``."""

    val: StateValue = None
    """Current value."""

    ack: bool = False
    """``True`` when the value was confirmed by the owning adapter/device."""

    ts: int | None = None
    """Epoch milliseconds of the last write."""

    lc: int | None = None
    """Epoch milliseconds of the last value change."""

    from_: str | None = Field(default=None, alias="from")
    """Originator, e.g. ``"system.adapter.hue.0"``."""

    q: int | None = None
    """Quality code (``0`` is good)."""

    user: str | None = None
    c: str | None = None
    expire: int | None = None

    @field_validator("ack", mode="before")
    @classmethod
    def _coerce_ack(cls, value: Any) -> bool:
        # Older adapters send 0/1 or omit the flag.
        return bool(value)

    @field_validator("ts", "lc", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> int | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @property
    def written_at(self) -> datetime | None:
        """``ts`` as a timezone-aware datetime."""
        return parse_iob_timestamp(self.ts)

    @property
    def changed_at(self) -> datetime | None:
        """``lc`` as a timezone-aware datetime."""
        return parse_iob_timestamp(self.lc)
