"""Custom exception hierarchy for pyiobroker."""

from __future__ import annotations


class IobError(Exception):
    """Base exception for all pyiobroker errors."""


class IobConfigError(IobError):
    """Invalid or missing configuration."""


class IobConnectionError(IobError):
    """Web-socket level failure (connect failed, socket dropped)."""

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)


class IobNotConnectedError(IobConnectionError):
    """A remote call was attempted without an established connection."""


class IobProtocolError(IobError):
    """Malformed frame received from the ioBroker adapter."""


class IobRemoteError(IobError):
    """The adapter answered a command with an error.

    ``command`` is the name of the remote command (e.g. ``"getObject"``).
    """

    def __init__(self, message: str, *, command: str = "") -> None:
        self.command = command
        super().__init__(message)
