"""Connection lifecycle and the UI-facing surface of the subscription engine."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Collection
from enum import StrEnum
from typing import Any, Protocol

import aiohttp

from pyiobroker._debounce import Debouncer
from pyiobroker._router import ChangeRouter
from pyiobroker._sync import SubscriptionSynchronizer
from pyiobroker.client import IobClient, StateChangeCallback
from pyiobroker.config import IobConfig
from pyiobroker.exceptions import IobError
from pyiobroker.models.object import IobObject
from pyiobroker.models.state import IobState, StateValue
from pyiobroker.state.cache import StateCache
from pyiobroker.state.events import FeedbackKind
from pyiobroker.state.index import EntitySubscriptions

_logger = logging.getLogger(__name__)


class ConnectionStatus(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONFIGURING = "reconfiguring"


class BridgeClient(Protocol):
    """Push client surface the bridge relies on; :class:`IobClient` implements it."""

    @property
    def is_connected(self) -> bool:
        ...

    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def subscribe_states(self, state_ids: Collection[str]) -> None:
        ...

    async def unsubscribe_states(self, state_ids: Collection[str]) -> None:
        ...

    async def load_objects(self, patterns: Collection[str]) -> list[IobObject]:
        ...

    async def set_state(self, state_id: str, val: StateValue, *, ack: bool = False) -> None:
        ...

    async def toggle_state(self, state_id: str) -> bool | None:
        ...

    async def send_to(self, instance: str, command: str, data: Any = None) -> Any:
        ...


ClientFactory = Callable[[IobConfig, StateChangeCallback], BridgeClient]


class IobBridge:
    """Keeps ioBroker subscriptions in line with the registered feedbacks.

    The bridge owns the push client exclusively. Feedback instances register
    interest with :meth:`register_dependent`; subscription changes are
    debounced into a single remote round trip, and inbound changes are
    signalled back through ``on_recheck(*dependent_ids)``.

    Usage::

        async with IobBridge(config, on_recheck=check_feedbacks) as bridge:
            bridge.register_dependent("alias.0.lamp.on", "fb-1", FeedbackKind.CHANNEL_STATE)
    """

    def __init__(
        self,
        config: IobConfig,
        *,
        on_recheck: Callable[..., None] | None = None,
        on_status: Callable[[ConnectionStatus, str | None], None] | None = None,
        on_reregister: Callable[[], None] | None = None,
        client_factory: ClientFactory | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._on_recheck = on_recheck
        self._on_status = on_status
        self._on_reregister = on_reregister
        self._http_session = session
        self._client_factory = client_factory or self._default_client_factory

        self._status = ConnectionStatus.DISCONNECTED
        self._client: BridgeClient | None = None
        self._connect_task: asyncio.Task[bool] | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._generation = 0
        self._force_resync = False

        self._cache = StateCache()
        self._index = EntitySubscriptions(self._on_index_change)
        self._synchronizer = SubscriptionSynchronizer(self._index)
        self._router = ChangeRouter(
            self._index,
            self._cache,
            self._recheck,
            ignore_not_acknowledged=config.ignore_not_acknowledged,
        )
        self._resubscriber = self._make_resubscriber()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> IobBridge:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def config(self) -> IobConfig:
        return self._config

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED and self._client is not None

    @property
    def subscriptions(self) -> EntitySubscriptions:
        return self._index

    @property
    def active_subscriptions(self) -> frozenset[str]:
        """State ids subscribed remotely as of the last successful sync."""
        return self._synchronizer.active

    @property
    def objects(self) -> list[IobObject]:
        return self._cache.get_objects()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Connect, sharing a single attempt between concurrent callers."""
        if self._status is ConnectionStatus.CONNECTED and self._client is not None:
            return True
        if self._connect_task is None:
            self._connect_task = asyncio.create_task(self._connect_internal(self._generation))
        return await asyncio.shield(self._connect_task)

    async def _connect_internal(self, generation: int) -> bool:
        start = time.monotonic()
        _logger.debug("Trying to connect to %s", self._config.url)
        self._set_status(ConnectionStatus.CONNECTING)

        client = self._client_factory(self._config, self._on_state_change)
        connected = False
        error: IobError | None = None
        try:
            await client.connect()
            connected = True
        except IobError as exc:
            error = exc
            _logger.error("Connect failed: %s", exc)
        finally:
            if self._connect_task is asyncio.current_task():
                self._connect_task = None
            _logger.info(
                "Connection attempt finished after %.0fms. Connected: %s",
                (time.monotonic() - start) * 1000,
                connected,
            )

        if generation != self._generation:
            # A disconnect or reconfigure ran while this attempt was in flight.
            _logger.debug("Discarding superseded connection attempt")
            await self._close_client(client)
            return False
        if not connected:
            await self._close_client(client)
            self._set_status(ConnectionStatus.DISCONNECTED, str(error))
            return False

        self._client = client
        self._cache.clear_states()
        self._synchronizer.reset()
        self._set_status(ConnectionStatus.CONNECTED)
        self._start_refresh()
        if len(self._index):
            self._resubscriber()
        return True

    async def disconnect(self) -> None:
        """Best-effort unsubscribe, then drop the client.

        A connection attempt still in flight is abandoned; it closes its own
        client when it completes.
        """
        await self._cancel_reconnect()
        self._reset_timers()
        self._connect_task = None

        client = self._client
        self._client = None
        if client is not None:
            active = self._synchronizer.active
            try:
                if active and client.is_connected:
                    _logger.debug("Unsubscribing from %d ioBroker states", len(active))
                    await client.unsubscribe_states(sorted(active))
            except IobError:
                _logger.debug("Unsubscribe during disconnect failed", exc_info=True)
            finally:
                await self._close_client(client)

        self._synchronizer.reset()
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def reconfigure(self, config: IobConfig) -> bool:
        """Apply new settings: reset all state and reconnect from scratch."""
        _logger.debug("Received config update")
        self._set_status(ConnectionStatus.RECONFIGURING)

        self._config = config
        self._router.ignore_not_acknowledged = config.ignore_not_acknowledged
        self._index.clear()
        self._cache.clear()

        await self.disconnect()
        if not await self.connect():
            _logger.debug("Reconnect failed; stopping config update")
            return False

        await self._resubscriber.flush()
        self._request_reregister()
        return True

    async def close(self) -> None:
        """Shut down for good."""
        await self.disconnect()
        self._index.clear()
        self._cache.clear()

    async def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        if task is None or task is asyncio.current_task():
            return
        self._reconnect_task = None
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _close_client(self, client: BridgeClient) -> None:
        try:
            await client.close()
        except Exception:
            _logger.debug("Closing ioBroker client failed", exc_info=True)

    def _set_status(self, status: ConnectionStatus, message: str | None = None) -> None:
        self._status = status
        if self._on_status is None:
            return
        try:
            self._on_status(status, message)
        except Exception:
            _logger.warning("Status callback failed", exc_info=True)

    def _default_client_factory(self, config: IobConfig, on_state_change: StateChangeCallback) -> BridgeClient:
        return IobClient(config, on_state_change=on_state_change, session=self._http_session)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _make_resubscriber(self) -> Debouncer:
        generation = self._generation

        async def _resubscribe() -> None:
            if generation != self._generation:
                _logger.debug("Ignoring resubscription from a previous connection")
                return
            await self._resubscribe()

        return Debouncer(
            _resubscribe,
            wait=self._config.debounce_wait,
            max_wait=self._config.debounce_max_wait,
            name="resubscribe",
        )

    def _reset_timers(self) -> None:
        self._generation += 1
        self._force_resync = False
        self._resubscriber.cancel()
        self._resubscriber = self._make_resubscriber()

        task = self._refresh_task
        self._refresh_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _start_refresh(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = asyncio.create_task(self._refresh_loop(self._generation))

    async def _refresh_loop(self, generation: int) -> None:
        while True:
            await asyncio.sleep(self._config.refresh_interval)
            if generation != self._generation or self._status is not ConnectionStatus.CONNECTED:
                return
            self._refresh()

    def _refresh(self) -> None:
        client = self._client
        if client is None or not client.is_connected:
            _logger.warning("Connection to %s lost; reconnecting", self._config.url)
            self._schedule_reconnect()
            return

        self._router.recheck(*self._index.get_dependent_ids_by_kind(FeedbackKind.READ_LAST_UPDATED))
        self._force_resync = True
        self._resubscriber()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        attempt = 0
        while True:
            attempt += 1
            if await self.reconfigure(self._config):
                _logger.info("Reconnected to %s after %d attempt(s)", self._config.url, attempt)
                break
            _logger.debug("Reconnect attempt %d failed; retrying in %.1fs", attempt, self._config.refresh_interval)
            await asyncio.sleep(self._config.refresh_interval)
        if self._reconnect_task is asyncio.current_task():
            self._reconnect_task = None

    async def _resubscribe(self) -> None:
        client = self._client
        if client is None or self._status is not ConnectionStatus.CONNECTED:
            _logger.debug("Resubscription requested while %s; skipping", self._status)
            return
        force = self._force_resync
        self._force_resync = False
        await self._synchronizer.sync(client, force=force)

    # ------------------------------------------------------------------
    # Index and routing
    # ------------------------------------------------------------------

    def _on_index_change(self) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Picked up by the next connect or refresh pass.
            return
        self._resubscriber()

    def _on_state_change(self, entity_id: str, state: IobState | None) -> None:
        if self._status is not ConnectionStatus.CONNECTED:
            return
        self._router.handle(entity_id, state)

    def _recheck(self, *dependent_ids: str) -> None:
        if self._on_recheck is not None:
            self._on_recheck(*dependent_ids)

    def _request_reregister(self) -> None:
        if self._on_reregister is None:
            return
        try:
            self._on_reregister()
        except Exception:
            _logger.warning("Re-register callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # UI surface
    # ------------------------------------------------------------------

    def register_dependent(self, entity_id: str, dependent_id: str, kind: FeedbackKind | str) -> None:
        self._index.subscribe(entity_id, dependent_id, kind)

    def unregister_dependent(self, entity_id: str, dependent_id: str) -> None:
        self._index.unsubscribe(entity_id, dependent_id)

    def current_state(self, entity_id: str) -> IobState | None:
        return self._cache.get_state(entity_id)

    def current_value(self, entity_id: str) -> StateValue:
        return self._cache.get_value(entity_id)

    def last_changed_timestamp(self, entity_id: str) -> int | None:
        return self._cache.get_last_changed(entity_id)

    # ------------------------------------------------------------------
    # Remote reads and actions
    # ------------------------------------------------------------------

    async def load_objects(self) -> list[IobObject]:
        """Load the objects of the configured namespaces for entity pickers."""
        client = self._client
        if client is None:
            return []
        try:
            objects = await client.load_objects(self._config.namespace_patterns())
        except IobError:
            _logger.warning("Loading ioBroker objects failed", exc_info=True)
            return []
        self._cache.set_objects(objects)
        return objects

    async def toggle_state(self, entity_id: str) -> bool | None:
        client = self._client
        if client is None:
            return None
        try:
            return await client.toggle_state(entity_id)
        except IobError:
            _logger.warning("Toggling %s failed", entity_id, exc_info=True)
            return None

    async def set_state(self, entity_id: str, val: StateValue, *, ack: bool = False) -> bool:
        client = self._client
        if client is None:
            return False
        try:
            await client.set_state(entity_id, val, ack=ack)
        except IobError:
            _logger.warning("Setting %s failed", entity_id, exc_info=True)
            return False
        return True

    async def send_message(self, instance: str, command: str, data: Any = None) -> Any:
        client = self._client
        if client is None:
            return None
        try:
            return await client.send_to(instance, command, data)
        except IobError:
            _logger.warning("Command %s::%s failed", instance, command, exc_info=True)
            return None
