"""Async push client for the ioBroker web-socket adapter."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Collection
from typing import Any

import aiohttp
from pydantic import ValidationError

from pyiobroker._protocol import OBJECT_CHANGE_EVENT, STATE_CHANGE_EVENT, build_url, split_callback_args
from pyiobroker._transport import Transport, WebSocketTransport
from pyiobroker.config import IobConfig
from pyiobroker.exceptions import IobError, IobNotConnectedError
from pyiobroker.models.object import IobObject
from pyiobroker.models.state import IobState, StateValue

_logger = logging.getLogger(__name__)

StateChangeCallback = Callable[[str, IobState | None], None]


def _parse_state(raw: Any) -> IobState | None:
    if not isinstance(raw, dict):
        return None
    try:
        return IobState.model_validate(raw)
    except ValidationError:
        _logger.debug("Discarding malformed state payload", exc_info=True)
        return None


def _parse_object(raw: Any) -> IobObject | None:
    if not isinstance(raw, dict):
        return None
    try:
        return IobObject.model_validate(raw)
    except ValidationError:
        _logger.debug("Discarding malformed object payload", exc_info=True)
        return None


class IobClient:
    """Async client for the ioBroker web-socket adapter.

    State changes of subscribed ids are delivered to ``on_state_change``;
    the client keeps no reference to whoever consumes them.

    Usage::

        async with IobClient(config, on_state_change=handler) as client:
            await client.subscribe_states(["alias.0.lamp.on"])
    """

    def __init__(
        self,
        config: IobConfig,
        *,
        on_state_change: StateChangeCallback | None = None,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
    ) -> None:
        self._config = config
        self._on_state_change = on_state_change
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._subscribed: set[str] = set()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> IobClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    @property
    def is_connected(self) -> bool:
        return self._transport is not None and self._transport.is_connected

    async def connect(self) -> None:
        """Open the connection. Raises :class:`IobConnectionError` on failure."""
        start = time.monotonic()
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=None, connect=self._config.connect_timeout),
                )
            self._transport = WebSocketTransport(
                build_url(self._config),
                self._http_session,
                on_event=self._on_event,
                ping_interval=self._config.ping_interval,
                connect_timeout=self._config.connect_timeout,
            )
        self._subscribed = set()
        await self._transport.connect()
        _logger.info(
            "Connected to %s in %.0fms",
            self._config.url,
            (time.monotonic() - start) * 1000,
        )

    async def close(self) -> None:
        transport = self._transport
        self._transport = None
        self._subscribed = set()
        try:
            if transport is not None:
                await transport.close()
        finally:
            if not self._external_session and self._http_session is not None:
                await self._http_session.close()
                self._http_session = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> Transport:
        transport = self._transport
        if transport is None or not transport.is_connected:
            raise IobNotConnectedError("Client not connected", url=self._config.url)
        return transport

    async def _call(self, command: str, *args: Any) -> Any:
        transport = self._require_transport()
        callback_args = await transport.request(command, *args)
        return split_callback_args(command, callback_args)

    def _on_event(self, name: str, args: list[Any]) -> None:
        if name == STATE_CHANGE_EVENT:
            if not args or not isinstance(args[0], str):
                return
            self._deliver(args[0], _parse_state(args[1] if len(args) > 1 else None))
            return
        if name == OBJECT_CHANGE_EVENT:
            _logger.debug("Object changed: %s", args[0] if args else None)
            return
        _logger.debug("Unhandled adapter event %s", name)

    def _deliver(self, state_id: str, state: IobState | None) -> None:
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(state_id, state)
        except Exception:
            _logger.debug("on_state_change callback failed for %s", state_id, exc_info=True)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe_states(self, state_ids: Collection[str]) -> None:
        """Subscribe to *state_ids* and deliver the current value of new ones.

        Ids already subscribed on this connection are re-sent; the adapter
        ignores duplicates.
        """
        ids = list(state_ids)
        if not ids:
            return
        await self._call("subscribe", ids)

        new_ids = [state_id for state_id in ids if state_id not in self._subscribed]
        self._subscribed.update(ids)
        if not new_ids:
            return

        try:
            states = await self.get_states(new_ids)
        except IobError:
            _logger.debug("Fetching initial values for %d states failed", len(new_ids), exc_info=True)
            return
        for state_id, state in states.items():
            self._deliver(state_id, state)

    async def unsubscribe_states(self, state_ids: Collection[str]) -> None:
        ids = list(state_ids)
        if not ids:
            return
        await self._call("unsubscribe", ids)
        self._subscribed.difference_update(ids)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_object(self, state_id: str) -> IobObject | None:
        return _parse_object(await self._call("getObject", state_id))

    async def get_state(self, state_id: str) -> IobState | None:
        return _parse_state(await self._call("getState", state_id))

    async def get_states(self, pattern: str | list[str]) -> dict[str, IobState]:
        """States matching a pattern (``"alias.*"``) or an explicit id list."""
        result = await self._call("getStates", pattern)
        if not isinstance(result, dict):
            return {}
        states: dict[str, IobState] = {}
        for state_id, raw in result.items():
            state = _parse_state(raw)
            if state is not None:
                states[state_id] = state
        return states

    async def load_objects(self, patterns: Collection[str]) -> list[IobObject]:
        """Objects behind every state matching *patterns*.

        Ids whose object no longer exists are dropped.
        """
        start = time.monotonic()
        state_ids: dict[str, None] = {}
        for pattern in patterns:
            for state_id in await self.get_states(pattern):
                state_ids.setdefault(state_id)

        objects = await asyncio.gather(*(self.get_object(state_id) for state_id in state_ids))
        valid = [obj for obj in objects if obj is not None]
        _logger.debug(
            "Retrieved %d (%d) objects from %d patterns in %.0fms",
            len(valid),
            len(state_ids),
            len(patterns),
            (time.monotonic() - start) * 1000,
        )
        return valid

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set_state(self, state_id: str, val: StateValue, *, ack: bool = False) -> None:
        await self._call("setState", state_id, {"val": val, "ack": ack})

    async def toggle_state(self, state_id: str) -> bool | None:
        """Invert a boolean state.

        Returns the value written, or ``None`` when the state is not a
        boolean or holds no boolean value.
        """
        _logger.debug("Toggling state %s", state_id)
        obj = await self.get_object(state_id)
        if obj is None or not obj.is_boolean_state:
            return None

        current = await self.get_state(state_id)
        if current is None or not isinstance(current.val, bool):
            return None

        new_val = not current.val
        await self.set_state(state_id, new_val)
        return new_val

    async def send_to(self, instance: str, command: str, data: Any = None) -> Any:
        """Send a message to an adapter instance and return its answer."""
        transport = self._require_transport()
        start = time.monotonic()
        _logger.debug("Invoking command %s::%s", instance, command)
        args = await transport.request("sendTo", instance, command, data)
        _logger.info(
            "Finished command %s::%s in %.0fms",
            instance,
            command,
            (time.monotonic() - start) * 1000,
        )
        return args[0] if args else None
