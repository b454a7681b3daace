"""Web-socket transport with request/callback correlation and keepalive."""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from collections.abc import Callable
from typing import Any, Protocol

import aiohttp

from pyiobroker._protocol import READY_EVENT, Frame, MessageType, decode_frame, encode_frame
from pyiobroker.exceptions import IobConnectionError, IobNotConnectedError, IobProtocolError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by :class:`~pyiobroker.client.IobClient`.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`WebSocketTransport`) concrete.
    """

    @property
    def is_connected(self) -> bool:
        ...

    async def connect(self) -> None:
        ...

    async def request(self, name: str, *args: Any) -> list[Any]:
        ...

    async def close(self) -> None:
        ...


class WebSocketTransport:
    """aiohttp web-socket speaking the ioBroker adapter framing.

    ``on_event(name, args)`` is invoked on the event loop for every adapter
    event (``stateChange``, ``objectChange`` ...).
    """

    def __init__(
        self,
        url: str,
        http_session: aiohttp.ClientSession,
        *,
        on_event: Callable[[str, list[Any]], None],
        ping_interval: float = 5.0,
        connect_timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._http = http_session
        self._on_event = on_event
        self._ping_interval = ping_interval
        self._connect_timeout = connect_timeout
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[list[Any]]] = {}
        self._ready: asyncio.Event = asyncio.Event()
        self._reader_task: asyncio.Task[None] | None = None
        self._ping_task: asyncio.Task[None] | None = None

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed and self._ready.is_set()

    async def connect(self) -> None:
        """Open the socket and wait for the adapter's ready event."""
        _logger.debug("Opening web-socket %s", self._url)
        self._ready = asyncio.Event()
        try:
            self._ws = await self._http.ws_connect(self._url, autoping=True)
        except (aiohttp.ClientError, OSError) as exc:
            raise IobConnectionError(f"Connect to {self._url} failed: {exc}", url=self._url) from exc

        reader = asyncio.create_task(self._read_loop(self._ws))
        self._reader_task = reader
        ready = asyncio.create_task(self._ready.wait())
        try:
            await asyncio.wait({ready, reader}, timeout=self._connect_timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            ready.cancel()

        if not self._ready.is_set():
            await self.close()
            reason = "closed during handshake" if reader.done() else "never became ready"
            raise IobConnectionError(f"Adapter at {self._url} {reason}", url=self._url)

        self._ping_task = asyncio.create_task(self._ping_loop())

    async def request(self, name: str, *args: Any) -> list[Any]:
        """Send a command and return the arguments of its callback frame."""
        ws = self._ws
        if ws is None or ws.closed:
            raise IobNotConnectedError(f"Cannot send {name}: not connected", url=self._url)

        msg_id = next(self._ids)
        future: asyncio.Future[list[Any]] = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = future
        try:
            await ws.send_str(encode_frame(Frame(type=MessageType.MESSAGE, id=msg_id, name=name, args=list(args))))
            return await future
        except (aiohttp.ClientError, ConnectionResetError) as exc:
            raise IobConnectionError(f"Sending {name} failed: {exc}", url=self._url) from exc
        finally:
            self._pending.pop(msg_id, None)

    async def close(self) -> None:
        ws = self._ws
        self._ws = None
        self._ready.clear()

        for task in (self._ping_task, self._reader_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._ping_task = None
        self._reader_task = None

        if ws is not None and not ws.closed:
            await ws.close()
        self._fail_pending("Connection closed")

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_text(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    _logger.warning("Web-socket error: %s", ws.exception())
                    break
        except (aiohttp.ClientError, ConnectionResetError):
            _logger.debug("Web-socket read failed", exc_info=True)
        finally:
            self._ready.clear()
            self._fail_pending("Connection lost")
            _logger.debug("Web-socket reader stopped")

    def _handle_text(self, text: str) -> None:
        try:
            frame = decode_frame(text)
        except IobProtocolError:
            _logger.debug("Ignoring malformed frame", exc_info=True)
            return

        if frame.type == MessageType.CALLBACK:
            future = self._pending.get(frame.id)
            if future is not None and not future.done():
                future.set_result(frame.args)
            return

        if frame.type != MessageType.MESSAGE:
            return

        if frame.name == READY_EVENT:
            self._ready.set()
            return

        try:
            self._on_event(frame.name, frame.args)
        except Exception:
            _logger.debug("Event handler for %s failed", frame.name, exc_info=True)

    async def _ping_loop(self) -> None:
        ping = encode_frame(Frame(type=MessageType.PING))
        while True:
            await asyncio.sleep(self._ping_interval)
            ws = self._ws
            if ws is None or ws.closed:
                return
            try:
                await ws.send_str(ping)
            except (aiohttp.ClientError, ConnectionResetError):
                _logger.debug("Ping failed", exc_info=True)
                return

    def _fail_pending(self, reason: str) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(IobConnectionError(reason, url=self._url))
