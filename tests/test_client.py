"""Tests for IobClient command handling over a scripted transport."""

from __future__ import annotations

from typing import Any

import pytest

from pyiobroker.client import IobClient
from pyiobroker.config import IobConfig
from pyiobroker.exceptions import IobNotConnectedError, IobRemoteError
from pyiobroker.models.state import IobState


class FakeTransport:
    """Answers commands from a table of handlers keyed by command name."""

    def __init__(self, handlers: dict[str, Any] | None = None) -> None:
        self.handlers: dict[str, Any] = handlers or {}
        self.requests: list[tuple[str, tuple[Any, ...]]] = []
        self.connected = False

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> None:
        self.connected = True

    async def request(self, name: str, *args: Any) -> list[Any]:
        self.requests.append((name, args))
        handler = self.handlers.get(name)
        if handler is None:
            return [None]
        if callable(handler):
            return handler(*args)
        return handler

    async def close(self) -> None:
        self.connected = False

    def commands(self) -> list[str]:
        return [name for name, _ in self.requests]


_OBJECTS = {
    "alias.0.lamp": {"_id": "alias.0.lamp", "type": "state", "common": {"type": "boolean", "name": "Lamp"}},
    "alias.0.temp": {"_id": "alias.0.temp", "type": "state", "common": {"type": "number", "unit": "°C"}},
}
_STATES = {
    "alias.0.lamp": {"val": False, "ack": True, "ts": 1700000000000},
    "alias.0.temp": {"val": 21.5, "ack": True, "ts": 1700000001000},
}


def _get_states(pattern: Any) -> list[Any]:
    if isinstance(pattern, list):
        return [None, {key: _STATES[key] for key in pattern if key in _STATES}]
    return [None, dict(_STATES)]


def _handlers() -> dict[str, Any]:
    return {
        "getObject": lambda state_id: [None, _OBJECTS.get(state_id)],
        "getState": lambda state_id: [None, _STATES.get(state_id)],
        "getStates": _get_states,
    }


async def _client(handlers: dict[str, Any] | None = None) -> tuple[IobClient, FakeTransport, list[tuple[str, Any]]]:
    received: list[tuple[str, Any]] = []
    transport = FakeTransport(_handlers() if handlers is None else handlers)
    client = IobClient(
        IobConfig(),
        on_state_change=lambda state_id, state: received.append((state_id, state)),
        transport=transport,
    )
    await client.connect()
    return client, transport, received


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_subscribe_fetches_initial_values_for_new_ids_only(self) -> None:
        client, transport, received = await _client()

        await client.subscribe_states(["alias.0.lamp"])
        await client.subscribe_states(["alias.0.lamp", "alias.0.temp"])

        assert transport.requests == [
            ("subscribe", (["alias.0.lamp"],)),
            ("getStates", (["alias.0.lamp"],)),
            ("subscribe", (["alias.0.lamp", "alias.0.temp"],)),
            ("getStates", (["alias.0.temp"],)),
        ]
        assert [(state_id, state.val) for state_id, state in received] == [
            ("alias.0.lamp", False),
            ("alias.0.temp", 21.5),
        ]

    @pytest.mark.asyncio
    async def test_empty_subscribe_sends_nothing(self) -> None:
        client, transport, _ = await _client()

        await client.subscribe_states([])
        await client.unsubscribe_states([])

        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_unsubscribed_id_is_fetched_again_on_resubscribe(self) -> None:
        client, transport, _ = await _client()

        await client.subscribe_states(["alias.0.lamp"])
        await client.unsubscribe_states(["alias.0.lamp"])
        await client.subscribe_states(["alias.0.lamp"])

        assert transport.commands() == ["subscribe", "getStates", "unsubscribe", "subscribe", "getStates"]

    @pytest.mark.asyncio
    async def test_initial_value_failure_does_not_fail_subscribe(self) -> None:
        handlers = _handlers()
        handlers["getStates"] = ["permission denied"]
        client, transport, received = await _client(handlers)

        await client.subscribe_states(["alias.0.lamp"])

        assert transport.commands() == ["subscribe", "getStates"]
        assert received == []

    @pytest.mark.asyncio
    async def test_state_change_event_is_delivered(self) -> None:
        client, _, received = await _client()

        client._on_event("stateChange", ["alias.0.lamp", {"val": True, "ack": False, "from": "system.adapter.web.0"}])
        client._on_event("stateChange", ["alias.0.gone", None])
        client._on_event("stateChange", [])
        client._on_event("objectChange", ["alias.0.lamp", {}])

        assert len(received) == 2
        state_id, state = received[0]
        assert state_id == "alias.0.lamp"
        assert isinstance(state, IobState)
        assert state.val is True
        assert state.from_ == "system.adapter.web.0"
        assert received[1] == ("alias.0.gone", None)

    @pytest.mark.asyncio
    async def test_failing_consumer_does_not_break_dispatch(self) -> None:
        transport = FakeTransport()

        def explode(state_id: str, state: IobState | None) -> None:
            raise RuntimeError("boom")

        client = IobClient(IobConfig(), on_state_change=explode, transport=transport)
        await client.connect()

        client._on_event("stateChange", ["alias.0.lamp", {"val": 1}])


class TestReads:
    @pytest.mark.asyncio
    async def test_get_object(self) -> None:
        client, _, _ = await _client()

        obj = await client.get_object("alias.0.temp")
        missing = await client.get_object("alias.0.nothing")

        assert obj is not None
        assert obj.id == "alias.0.temp"
        assert obj.common.unit == "°C"
        assert missing is None

    @pytest.mark.asyncio
    async def test_remote_error_raises(self) -> None:
        client, _, _ = await _client({"getObject": ["permissionError"]})

        with pytest.raises(IobRemoteError) as exc_info:
            await client.get_object("alias.0.lamp")

        assert exc_info.value.command == "getObject"

    @pytest.mark.asyncio
    async def test_not_connected_raises(self) -> None:
        client = IobClient(IobConfig(), transport=FakeTransport())

        with pytest.raises(IobNotConnectedError):
            await client.get_state("alias.0.lamp")

    @pytest.mark.asyncio
    async def test_get_states_skips_malformed_entries(self) -> None:
        client, _, _ = await _client({"getStates": [None, {"a": {"val": 1}, "b": "garbage", "c": None}]})

        states = await client.get_states("*")

        assert list(states) == ["a"]

    @pytest.mark.asyncio
    async def test_load_objects_deduplicates_and_drops_missing(self) -> None:
        objects = dict(_OBJECTS)
        handlers = _handlers()
        handlers["getStates"] = lambda pattern: [
            None,
            {"alias.0.lamp": {"val": True}, "alias.0.deleted": {"val": 0}},
        ]
        handlers["getObject"] = lambda state_id: [None, objects.get(state_id)]
        client, transport, _ = await _client(handlers)

        loaded = await client.load_objects(["alias.*", "alias.0.*"])

        assert [obj.id for obj in loaded] == ["alias.0.lamp"]
        assert transport.commands().count("getObject") == 2


class TestWrites:
    @pytest.mark.asyncio
    async def test_set_state_sends_value_and_ack(self) -> None:
        client, transport, _ = await _client()

        await client.set_state("alias.0.temp", 22, ack=True)

        assert transport.requests == [("setState", ("alias.0.temp", {"val": 22, "ack": True}))]

    @pytest.mark.asyncio
    async def test_toggle_boolean_state(self) -> None:
        client, transport, _ = await _client()

        assert await client.toggle_state("alias.0.lamp") is True
        assert transport.requests[-1] == ("setState", ("alias.0.lamp", {"val": True, "ack": False}))

    @pytest.mark.asyncio
    async def test_toggle_non_boolean_state_is_noop(self) -> None:
        client, transport, _ = await _client()

        assert await client.toggle_state("alias.0.temp") is None
        assert "setState" not in transport.commands()

    @pytest.mark.asyncio
    async def test_toggle_without_boolean_value_is_noop(self) -> None:
        handlers = _handlers()
        handlers["getState"] = [None, {"val": None}]
        client, transport, _ = await _client(handlers)

        assert await client.toggle_state("alias.0.lamp") is None
        assert "setState" not in transport.commands()

    @pytest.mark.asyncio
    async def test_send_to_returns_single_result(self) -> None:
        client, transport, _ = await _client({"sendTo": [{"result": "ok"}]})

        assert await client.send_to("hue.0", "browse", {"limit": 1}) == {"result": "ok"}
        assert transport.requests == [("sendTo", ("hue.0", "browse", {"limit": 1}))]
