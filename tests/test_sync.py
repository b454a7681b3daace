from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass, field

import pytest

from pyiobroker._sync import SubscriptionSynchronizer
from pyiobroker.exceptions import IobNotConnectedError
from pyiobroker.state.events import FeedbackKind
from pyiobroker.state.index import EntitySubscriptions


@dataclass
class _FakeSubscriber:
    connected: bool = True
    subscribed: list[list[str]] = field(default_factory=list)
    unsubscribed: list[list[str]] = field(default_factory=list)

    async def subscribe_states(self, state_ids: Collection[str]) -> None:
        if not self.connected:
            raise IobNotConnectedError("not connected")
        self.subscribed.append(list(state_ids))

    async def unsubscribe_states(self, state_ids: Collection[str]) -> None:
        if not self.connected:
            raise IobNotConnectedError("not connected")
        self.unsubscribed.append(list(state_ids))


@pytest.mark.asyncio
async def test_first_sync_subscribes_whole_required_set() -> None:
    index = EntitySubscriptions()
    index.subscribe("b", "fb-1", FeedbackKind.READ_VALUE)
    index.subscribe("a", "fb-2", FeedbackKind.READ_VALUE)
    sync = SubscriptionSynchronizer(index)
    client = _FakeSubscriber()

    assert await sync.sync(client)

    assert client.subscribed == [["a", "b"]]
    assert client.unsubscribed == []
    assert sync.active == {"a", "b"}


@pytest.mark.asyncio
async def test_removed_entities_are_unsubscribed_and_rest_resent() -> None:
    index = EntitySubscriptions()
    index.subscribe("a", "fb-1", FeedbackKind.READ_VALUE)
    index.subscribe("b", "fb-2", FeedbackKind.READ_VALUE)
    sync = SubscriptionSynchronizer(index)
    client = _FakeSubscriber()
    await sync.sync(client)

    index.unsubscribe("b", "fb-2")
    index.subscribe("c", "fb-3", FeedbackKind.READ_VALUE)
    await sync.sync(client)

    assert client.unsubscribed == [["b"]]
    assert client.subscribed[-1] == ["a", "c"]
    assert sync.active == {"a", "c"}


@pytest.mark.asyncio
async def test_unchanged_set_sends_nothing() -> None:
    index = EntitySubscriptions()
    index.subscribe("a", "fb-1", FeedbackKind.READ_VALUE)
    sync = SubscriptionSynchronizer(index)
    client = _FakeSubscriber()
    await sync.sync(client)

    assert await sync.sync(client)

    assert client.subscribed == [["a"]]


@pytest.mark.asyncio
async def test_forced_pass_resends_unchanged_set() -> None:
    index = EntitySubscriptions()
    index.subscribe("a", "fb-1", FeedbackKind.READ_VALUE)
    sync = SubscriptionSynchronizer(index)
    client = _FakeSubscriber()
    await sync.sync(client)

    assert await sync.sync(client, force=True)

    assert client.subscribed == [["a"], ["a"]]
    assert client.unsubscribed == []


@pytest.mark.asyncio
async def test_forced_pass_with_empty_index_sends_nothing() -> None:
    sync = SubscriptionSynchronizer(EntitySubscriptions())
    client = _FakeSubscriber()

    assert await sync.sync(client, force=True)

    assert client.subscribed == []
    assert client.unsubscribed == []


@pytest.mark.asyncio
async def test_emptied_index_only_unsubscribes() -> None:
    index = EntitySubscriptions()
    index.subscribe("a", "fb-1", FeedbackKind.READ_VALUE)
    sync = SubscriptionSynchronizer(index)
    client = _FakeSubscriber()
    await sync.sync(client)

    index.unsubscribe("a", "fb-1")
    await sync.sync(client)

    assert client.unsubscribed == [["a"]]
    assert client.subscribed == [["a"]]
    assert sync.active == frozenset()


@pytest.mark.asyncio
async def test_failure_keeps_active_set_and_next_pass_heals() -> None:
    index = EntitySubscriptions()
    index.subscribe("a", "fb-1", FeedbackKind.READ_VALUE)
    sync = SubscriptionSynchronizer(index)
    client = _FakeSubscriber(connected=False)

    assert not await sync.sync(client)
    assert sync.active == frozenset()

    client.connected = True
    assert await sync.sync(client)
    assert client.subscribed == [["a"]]
    assert sync.active == {"a"}


@pytest.mark.asyncio
async def test_reset_forgets_active_set() -> None:
    index = EntitySubscriptions()
    index.subscribe("a", "fb-1", FeedbackKind.READ_VALUE)
    sync = SubscriptionSynchronizer(index)
    client = _FakeSubscriber()
    await sync.sync(client)

    sync.reset()
    await sync.sync(client)

    assert sync.active == {"a"}
    assert client.subscribed == [["a"], ["a"]]
    assert client.unsubscribed == []
