"""Routes inbound state changes to the feedback instances that depend on them."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from pyiobroker.models.state import IobState
from pyiobroker.state.cache import StateCache
from pyiobroker.state.index import EntitySubscriptions

_logger = logging.getLogger(__name__)


def _coerce_state(raw_state: Any) -> IobState | None:
    if isinstance(raw_state, IobState):
        return raw_state
    if not isinstance(raw_state, dict):
        return None
    try:
        return IobState.model_validate(raw_state)
    except ValidationError:
        return None


class ChangeRouter:
    """Caches each accepted change and signals the affected dependents."""

    def __init__(
        self,
        index: EntitySubscriptions,
        cache: StateCache,
        on_recheck: Callable[..., None],
        *,
        ignore_not_acknowledged: bool = False,
    ) -> None:
        self._index = index
        self._cache = cache
        self._on_recheck = on_recheck
        self.ignore_not_acknowledged = ignore_not_acknowledged

    def handle(self, entity_id: str, raw_state: Any) -> list[str]:
        """Process one ``stateChange`` notification.

        Returns the dependent ids that were signalled (possibly empty).
        Deleted states (``None``) and malformed payloads are dropped.
        """
        state = _coerce_state(raw_state)
        if state is None:
            _logger.debug("Dropping empty or malformed state change for %s", entity_id)
            return []

        if self.ignore_not_acknowledged and not state.ack:
            return []

        _logger.debug("Received event for id %s -> Value: %s", entity_id, state.val)
        self._cache.set_state(entity_id, state)

        dependent_ids = self._index.get_dependent_ids(entity_id)
        if dependent_ids:
            self.recheck(*dependent_ids)
        return dependent_ids

    def recheck(self, *dependent_ids: str) -> None:
        if not dependent_ids:
            return
        try:
            self._on_recheck(*dependent_ids)
        except Exception:
            _logger.warning("Feedback recheck callback failed", exc_info=True)
