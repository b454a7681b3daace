"""ioBroker object model (the metadata behind a state id)."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from pyiobroker.models._base import IobBaseModel


class IobObjectCommon(IobBaseModel):
    """The ``common`` section of an ioBroker object."""

    name: str | dict[str, str] | None = None
    """Display name, either plain or translated (``{"en": ..., "de": ...}``)."""

    type: str | None = None
    """Value type of a state (``"boolean"``, ``"number"``, ``"string"`` ...)."""

    role: str | None = None
    read: bool | None = None
    write: bool | None = None
    unit: str | None = None
    min: float | None = None
    max: float | None = None
    states: dict[str, Any] | list[Any] | str | None = None

    def display_name(self, language: str = "en") -> str | None:
        if isinstance(self.name, dict):
            return self.name.get(language) or next(iter(self.name.values()), None)
        return self.name


class IobObject(IobBaseModel):
    """An ioBroker object as returned by ``getObject``."""

    id: str = Field(alias="_id")
    type: str | None = None
    """Object type (``"state"``, ``"channel"``, ``"device"`` ...)."""

    common: IobObjectCommon = Field(default_factory=IobObjectCommon)
    native: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_boolean_state(self) -> bool:
        return self.common.type == "boolean"

    @property
    def is_writable(self) -> bool:
        return self.common.write is not False

