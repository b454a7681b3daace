"""Client configuration for pyiobroker."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyiobroker.exceptions import IobConfigError

_PROTOCOLS = frozenset({"ws", "wss"})


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class IobConfig:
    """Connection and engine configuration.

    Parameters
    ----------
    host : str
        Host name or address of the ioBroker web-socket adapter.
    port : int
        Adapter port. Defaults to the ``ws`` adapter default ``8084``.
    protocol : str
        ``"ws"`` or ``"wss"``.
    client_name : str
        Name announced to the adapter in the connection URL.
    additional_namespaces : str
        Comma separated list of namespaces (e.g. ``"hue.0, zigbee.0"``)
        whose objects are offered to entity pickers.
    load_all_aliases : bool
        Also offer every object below ``alias.*``.
    ignore_not_acknowledged : bool
        Drop state changes whose ``ack`` flag is not set. Stops command
        echoes of our own writes from flickering feedbacks.
    debounce_wait : float
        Quiet period in seconds before subscription changes are pushed.
    debounce_max_wait : float
        Upper bound in seconds a burst of changes may postpone a push.
    refresh_interval : float
        Period in seconds of the last-changed refresh and subscription
        self-heal pass.
    ping_interval : float
        Keepalive ping period in seconds.
    connect_timeout : float
        Transport connect timeout in seconds, handed to aiohttp.
    """

    host: str = "127.0.0.1"
    port: int = 8084
    protocol: str = "ws"
    client_name: str = "pyiobroker"
    additional_namespaces: str = ""
    load_all_aliases: bool = True
    ignore_not_acknowledged: bool = False
    debounce_wait: float = 0.01
    debounce_max_wait: float = 0.05
    refresh_interval: float = 1.0
    ping_interval: float = 5.0
    connect_timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.protocol not in _PROTOCOLS:
            raise IobConfigError(f"Unsupported protocol {self.protocol!r}; expected one of {sorted(_PROTOCOLS)}")
        if not self.host.strip():
            raise IobConfigError("host must be non-empty")
        if not 0 < self.port < 65536:
            raise IobConfigError(f"port out of range: {self.port}")
        for name in ("debounce_wait", "refresh_interval", "ping_interval", "connect_timeout"):
            if getattr(self, name) <= 0:
                raise IobConfigError(f"{name} must be positive")
        if self.debounce_max_wait < self.debounce_wait:
            raise IobConfigError("debounce_max_wait must not be shorter than debounce_wait")

    @property
    def url(self) -> str:
        """Base URL of the adapter (without query string)."""
        return f"{self.protocol}://{self.host}:{self.port}/"

    def namespace_patterns(self) -> list[str]:
        """Object patterns to load for entity pickers.

        Overlapping namespaces (``"alias.0"`` next to ``load_all_aliases``)
        are not collapsed; objects may then be fetched twice.
        """
        patterns = [f"{ns}.*" for ns in (item.strip() for item in self.additional_namespaces.split(",")) if ns]
        if self.load_all_aliases:
            patterns.append("alias.*")
        return patterns

    @classmethod
    def from_env(cls, **overrides: Any) -> IobConfig:
        """Create configuration from environment variables.

        Reads optional ``IOB_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        IobConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "IOB_HOST": "host",
            "IOB_PROTOCOL": "protocol",
            "IOB_CLIENT_NAME": "client_name",
            "IOB_ADDITIONAL_NAMESPACES": "additional_namespaces",
        }
        _ENV_FLOAT_MAP = {
            "IOB_DEBOUNCE_WAIT": "debounce_wait",
            "IOB_DEBOUNCE_MAX_WAIT": "debounce_max_wait",
            "IOB_REFRESH_INTERVAL": "refresh_interval",
            "IOB_PING_INTERVAL": "ping_interval",
            "IOB_CONNECT_TIMEOUT": "connect_timeout",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        try:
            port_env = env.get("IOB_PORT")
            if port_env is not None and "port" not in overrides:
                config_kwargs["port"] = int(port_env)

            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
        except ValueError as exc:
            raise IobConfigError(f"Invalid numeric environment value: {exc}") from exc

        if "load_all_aliases" not in overrides:
            config_kwargs["load_all_aliases"] = _env_bool(env.get("IOB_LOAD_ALL_ALIASES"), True)

        if "ignore_not_acknowledged" not in overrides:
            config_kwargs["ignore_not_acknowledged"] = _env_bool(
                env.get("IOB_IGNORE_NOT_ACKNOWLEDGED"),
                False,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
