"""Remote subscription synchronizer."""

from __future__ import annotations

import logging
from collections.abc import Collection
from typing import Protocol

from pyiobroker.exceptions import IobError
from pyiobroker.state.index import EntitySubscriptions

_logger = logging.getLogger(__name__)


class RemoteSubscriber(Protocol):
    """Subset of the push client used to manage subscriptions.

    ``IobClient`` implements it; tests pass small fakes.
    """

    async def subscribe_states(self, state_ids: Collection[str]) -> None:
        ...

    async def unsubscribe_states(self, state_ids: Collection[str]) -> None:
        ...


class SubscriptionSynchronizer:
    """Makes the remote subscription set equal the index key set."""

    def __init__(self, index: EntitySubscriptions) -> None:
        self._index = index
        self._active: frozenset[str] = frozenset()

    @property
    def active(self) -> frozenset[str]:
        """State ids subscribed by the last successful pass."""
        return self._active

    def reset(self) -> None:
        """Forget the active set; a new connection starts with no subscriptions."""
        self._active = frozenset()

    async def sync(self, client: RemoteSubscriber, *, force: bool = False) -> bool:
        """Push the required subscription set to *client*.

        Returns ``True`` when the remote side now matches the index. A pass
        with nothing to change sends nothing unless *force* is set, in which
        case the required set is re-sent to repair drift on the adapter side.
        Remote failures are logged and leave the recorded active set
        untouched; the next pass (periodic or after reconnect) heals the
        divergence.
        """
        required = self._index.get_required_entity_ids()
        if required == self._active and not (force and required):
            return True
        to_remove = self._active - required
        to_add = required - self._active

        try:
            if to_remove:
                _logger.debug("Unsubscribing from %d ioBroker states", len(to_remove))
                await client.unsubscribe_states(sorted(to_remove))
            if required:
                if to_add:
                    _logger.info("Subscribing to %d ioBroker states (%d new)", len(required), len(to_add))
                # The whole set is re-sent; the adapter treats known ids as no-ops.
                await client.subscribe_states(sorted(required))
        except IobError:
            _logger.debug("Subscription sync failed; keeping previous active set", exc_info=True)
            return False

        self._active = required
        return True
