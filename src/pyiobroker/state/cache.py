"""Latest known values and objects received from ioBroker."""

from __future__ import annotations

from pyiobroker.models.object import IobObject
from pyiobroker.models.state import IobState, StateValue


class StateCache:
    """Last observed state per entity plus the loaded object catalogue.

    Written by the change router, read by feedback evaluation. Cleared as a
    whole whenever the connection is reset.
    """

    def __init__(self) -> None:
        self._states: dict[str, IobState] = {}
        self._objects: dict[str, IobObject] = {}

    def set_state(self, entity_id: str, state: IobState) -> None:
        self._states[entity_id] = state

    def get_state(self, entity_id: str) -> IobState | None:
        return self._states.get(entity_id)

    def get_value(self, entity_id: str) -> StateValue:
        state = self._states.get(entity_id)
        return state.val if state is not None else None

    def get_last_changed(self, entity_id: str) -> int | None:
        state = self._states.get(entity_id)
        return state.ts if state is not None else None

    def set_objects(self, objects: list[IobObject]) -> None:
        self._objects = {obj.id: obj for obj in objects}

    def get_objects(self) -> list[IobObject]:
        return list(self._objects.values())

    def get_object(self, entity_id: str) -> IobObject | None:
        return self._objects.get(entity_id)

    def clear_states(self) -> None:
        self._states = {}

    def clear(self) -> None:
        self._states = {}
        self._objects = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._states
