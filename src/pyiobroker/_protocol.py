"""Framing of the ioBroker web-socket adapter protocol.

Every frame is a JSON array ``[type, id, name, args]``:

* ``MESSAGE`` frames carry commands (client → adapter) and events
  (adapter → client, e.g. ``stateChange``).
* ``CALLBACK`` frames answer a command; ``id`` repeats the command id and
  ``args`` holds the callback arguments, usually ``[error, result]``.
* ``PING``/``PONG`` frames keep the socket alive and carry nothing else.
"""

from __future__ import annotations

import enum
import json
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

from pyiobroker.config import IobConfig
from pyiobroker.exceptions import IobProtocolError, IobRemoteError

#: Event sent by the adapter once the session is ready for commands.
READY_EVENT = "___ready___"
STATE_CHANGE_EVENT = "stateChange"
OBJECT_CHANGE_EVENT = "objectChange"


class MessageType(enum.IntEnum):
    MESSAGE = 0
    PING = 1
    PONG = 2
    CALLBACK = 3


@dataclass(frozen=True)
class Frame:
    """One decoded protocol frame."""

    type: MessageType
    id: int = 0
    name: str = ""
    args: list[Any] = field(default_factory=list)


def encode_frame(frame: Frame) -> str:
    if frame.type in (MessageType.PING, MessageType.PONG):
        return json.dumps([int(frame.type)])
    return json.dumps([int(frame.type), frame.id, frame.name, frame.args], separators=(",", ":"))


def decode_frame(text: str) -> Frame:
    """Parse a text frame, raising :class:`IobProtocolError` when malformed."""
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise IobProtocolError(f"Frame is not JSON: {text[:64]}") from exc

    if not isinstance(parsed, list) or not parsed:
        raise IobProtocolError(f"Frame is not a non-empty array: {text[:64]}")

    try:
        msg_type = MessageType(parsed[0])
    except (ValueError, TypeError) as exc:
        raise IobProtocolError(f"Unknown frame type: {parsed[0]!r}") from exc

    if msg_type in (MessageType.PING, MessageType.PONG):
        return Frame(type=msg_type)

    if len(parsed) < 3:
        raise IobProtocolError(f"Truncated frame: {text[:64]}")

    msg_id = parsed[1] if isinstance(parsed[1], int) else 0
    name = parsed[2] if isinstance(parsed[2], str) else ""
    args = parsed[3] if len(parsed) > 3 else []
    if not isinstance(args, list):
        args = [args]
    return Frame(type=msg_type, id=msg_id, name=name, args=args)


def build_url(config: IobConfig, *, now_ms: int | None = None) -> str:
    """Connection URL including the session id and client name query."""
    sid = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{config.url}?{urlencode({'sid': sid, 'name': config.client_name})}"


def split_callback_args(command: str, args: list[Any]) -> Any:
    """Unpack ``[error, result]`` callback arguments.

    Returns the result, raising :class:`IobRemoteError` when ``error`` is set.
    Empty callbacks yield ``None``.
    """
    if not args:
        return None
    error = args[0]
    if error:
        message = error if isinstance(error, str) else json.dumps(error)
        raise IobRemoteError(f"{command} failed: {message}", command=command)
    return args[1] if len(args) > 1 else None
