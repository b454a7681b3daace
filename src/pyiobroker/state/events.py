"""Feedback kinds and registrations."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator


class FeedbackKind(StrEnum):
    """Which check a feedback instance performs against its state."""

    CHANNEL_STATE = "channel_state"
    """Boolean state matches the configured on/off value."""

    READ_VALUE = "read_value"
    """Raw value of the state."""

    READ_LAST_UPDATED = "read_last_updated"
    """Timestamp of the last value change; refreshed periodically."""


class Registration(BaseModel):
    """A feedback instance's interest in one entity."""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    dependent_id: str
    kind: FeedbackKind

    @field_validator("entity_id", "dependent_id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("identifier must be non-empty")
        return stripped
