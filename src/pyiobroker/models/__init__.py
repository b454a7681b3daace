"""Data models for ioBroker payloads."""

from pyiobroker.models._base import IobBaseModel, parse_iob_timestamp
from pyiobroker.models.object import IobObject, IobObjectCommon
from pyiobroker.models.state import IobState, StateValue

__all__ = [
    "IobBaseModel",
    "IobObject",
    "IobObjectCommon",
    "IobState",
    "StateValue",
    "parse_iob_timestamp",
]
