"""Entity→dependent index.

Maps each ioBroker state id to the feedback instances that currently need
it. The key set of the index is, at all times, the minimal set of states
that must be subscribed remotely.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pyiobroker.state.events import FeedbackKind, Registration

_logger = logging.getLogger(__name__)


def _normalize_id(value: object) -> str:
    """Ids are opaque strings; surrounding whitespace is not significant."""
    return value.strip() if isinstance(value, str) else ""


class EntitySubscriptions:
    """Many-to-many bookkeeping between entities and feedback instances.

    Invariants:
    - a dependent id is registered under at most one entity;
    - an entity without dependents is not kept.

    Every mutation calls ``on_change`` (normally the debounced
    resubscriber), whether or not the required entity set changed.
    No operation raises: registrations with an empty id or an unknown kind
    are logged and ignored.
    """

    def __init__(self, on_change: Callable[[], object] | None = None) -> None:
        self._on_change = on_change
        self._by_entity: dict[str, dict[str, Registration]] = {}
        self._entity_by_dependent: dict[str, str] = {}

    def subscribe(self, entity_id: str, dependent_id: str, kind: FeedbackKind | str) -> None:
        """Register *dependent_id* for *entity_id*, moving any previous registration."""
        entity_id = _normalize_id(entity_id)
        dependent_id = _normalize_id(dependent_id)
        if not entity_id or not dependent_id:
            _logger.warning("Ignoring registration with empty id (entity=%r, dependent=%r)", entity_id, dependent_id)
            return
        try:
            feedback_kind = FeedbackKind(kind)
        except ValueError:
            _logger.warning("Ignoring registration of %s with unknown feedback kind %r", dependent_id, kind)
            return

        registration = Registration(entity_id=entity_id, dependent_id=dependent_id, kind=feedback_kind)

        previous = self._entity_by_dependent.get(dependent_id)
        if previous is not None and previous != entity_id:
            _logger.debug("Moving dependent %s from %s to %s", dependent_id, previous, entity_id)
            self._remove(previous, dependent_id)

        self._by_entity.setdefault(entity_id, {})[dependent_id] = registration
        self._entity_by_dependent[dependent_id] = entity_id
        self._notify()

    def unsubscribe(self, entity_id: str, dependent_id: str) -> None:
        """Drop *dependent_id* from *entity_id*; unknown pairs are ignored."""
        self._remove(_normalize_id(entity_id), _normalize_id(dependent_id))
        self._notify()

    def get_dependent_ids(self, entity_id: str, kind: FeedbackKind | None = None) -> list[str]:
        dependents = self._by_entity.get(_normalize_id(entity_id))
        if not dependents:
            return []
        return [dep_id for dep_id, reg in dependents.items() if kind is None or reg.kind == kind]

    def get_dependent_ids_by_kind(self, kind: FeedbackKind) -> list[str]:
        return [
            dep_id
            for dependents in self._by_entity.values()
            for dep_id, reg in dependents.items()
            if reg.kind == kind
        ]

    def get_required_entity_ids(self) -> frozenset[str]:
        return frozenset(self._by_entity)

    def get_registration(self, dependent_id: str) -> Registration | None:
        dependent_id = _normalize_id(dependent_id)
        entity_id = self._entity_by_dependent.get(dependent_id)
        if entity_id is None:
            return None
        return self._by_entity[entity_id].get(dependent_id)

    def clear(self) -> None:
        """Forget every registration. Does not notify."""
        self._by_entity = {}
        self._entity_by_dependent = {}

    def _remove(self, entity_id: str, dependent_id: str) -> None:
        dependents = self._by_entity.get(entity_id)
        if dependents is None or dependent_id not in dependents:
            return
        del dependents[dependent_id]
        if self._entity_by_dependent.get(dependent_id) == entity_id:
            del self._entity_by_dependent[dependent_id]
        if not dependents:
            del self._by_entity[entity_id]

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def __len__(self) -> int:
        return len(self._by_entity)

    def __contains__(self, entity_id: object) -> bool:
        return _normalize_id(entity_id) in self._by_entity
