"""HTTP server binding settings resolved alongside TLS policy."""
from __future__ import annotations

import ipaddress
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum

from .errors import ConfigError, MissingRequiredFieldError
from .optional import Option
from .tls import TLSConfigLoader, TLSPolicy

LOGGER = logging.getLogger(__name__)

DEFAULT_BIND_ADDR = "127.0.0.1"


class Protocol(Enum):
    """Wire protocols an HTTP server may speak."""

    HTTP = "http"
    HTTPS = "https"
    HTTP2 = "http2"
    UNENCRYPTED_HTTP2 = "h2c"

    @property
    def scheme(self) -> str:
        """Return the URL scheme clients should use."""
        if self in (Protocol.HTTPS, Protocol.HTTP2):
            return "https"
        return "http"

    @property
    def default_port(self) -> int | None:
        """Return the well-known port, if the protocol has one."""
        if self is Protocol.HTTP:
            return 80
        if self is Protocol.HTTPS:
            return 443
        return None

    @property
    def alpn_protocols(self) -> tuple[str, ...]:
        """Return ALPN identifiers to advertise."""
        if self in (Protocol.HTTP, Protocol.HTTPS):
            return ("http/1.1",)
        if self is Protocol.HTTP2:
            return ("h2",)
        return ("h2c",)

    @classmethod
    def parse(cls, value: str | Protocol) -> Protocol:
        """Return the protocol named by *value* (case-insensitive)."""
        if isinstance(value, Protocol):
            return value
        text = value.strip().lower()
        for member in cls:
            if text in (member.value, member.name.lower()):
                return member
        allowed = ", ".join(member.value for member in cls)
        raise ConfigError(f"Unsupported protocol '{value}'. Allowed: {allowed}.")


@dataclass(frozen=True)
class HttpServerConfig:
    """Everything a caller needs to bind and serve HTTP."""

    protocol: Protocol
    hostname: str
    bind_addr: str
    port: int
    remote_address: str
    tls: TLSPolicy
    handler: Callable[..., object] | None = None
    read_timeout: float = 0.0
    read_header_timeout: float = 0.0
    max_header_bytes: int = 0

    @property
    def server_address(self) -> tuple[str, int]:
        """Return the ``(host, port)`` tuple for socket binding."""
        return self.bind_addr, self.port

    def with_options(self, **changes: object) -> HttpServerConfig:
        """Return a copy with handler/timeouts/limits replaced."""
        unknown = set(changes) - {
            "handler",
            "read_timeout",
            "read_header_timeout",
            "max_header_bytes",
        }
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise TypeError(f"Unsupported server options: {joined}.")
        return replace(self, **changes)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "protocol": self.protocol.value,
            "hostname": self.hostname,
            "bind_addr": self.bind_addr,
            "port": self.port,
            "remote_address": self.remote_address,
            "read_timeout": self.read_timeout,
            "read_header_timeout": self.read_header_timeout,
            "max_header_bytes": self.max_header_bytes,
            "tls": self.tls.to_dict(),
        }


@dataclass
class HttpServerLoader:
    """Resolve :class:`HttpServerConfig` from optional settings."""

    protocol: Option[Protocol] = field(default_factory=Option.none)
    hostname: Option[str] = field(default_factory=Option.none)
    bind_addr: Option[str] = field(default_factory=Option.none)
    bind_port: Option[int] = field(default_factory=Option.none)
    read_timeout: Option[float] = field(default_factory=Option.none)
    read_header_timeout: Option[float] = field(default_factory=Option.none)
    max_header_bytes: Option[int] = field(default_factory=Option.none)
    tls: TLSConfigLoader = field(default_factory=TLSConfigLoader)
    handler: Callable[..., object] | None = None
    _previous: HttpServerConfig | None = field(default=None, init=False, repr=False)

    def previous(self) -> HttpServerConfig | None:
        """Return the config produced by the last successful :meth:`update`."""
        return self._previous

    def update(self) -> HttpServerConfig:
        """Resolve TLS and binding settings into a new :class:`HttpServerConfig`."""
        tls_requested = self.tls.enabled.get_or(False)
        protocol = self.protocol.get_or(Protocol.HTTPS if tls_requested else Protocol.HTTP)
        bind_addr = self.bind_addr.get_or(DEFAULT_BIND_ADDR)
        if bind_addr:
            try:
                ipaddress.ip_address(bind_addr)
            except ValueError as exc:
                raise ConfigError(
                    f"Bind address {bind_addr!r} is not an IP address.", field="server.bind_addr"
                ) from exc
        hostname = self.hostname.get_or(bind_addr)

        port, explicit = self.bind_port.get()
        if not explicit or port is None:
            port = protocol.default_port
            if port is None:
                raise MissingRequiredFieldError("server.port")
        if not 0 < port < 65536:
            raise ConfigError(f"Port {port} is out of range.", field="server.port")

        if explicit:
            remote_address = f"{protocol.scheme}://{hostname}:{port}"
        else:
            remote_address = f"{protocol.scheme}://{hostname}"

        tls_policy = self.tls.update()

        config = HttpServerConfig(
            protocol=protocol,
            hostname=hostname,
            bind_addr=bind_addr,
            port=port,
            remote_address=remote_address,
            tls=tls_policy,
            handler=self.handler,
            read_timeout=self.read_timeout.get_or(0.0),
            read_header_timeout=self.read_header_timeout.get_or(0.0),
            max_header_bytes=self.max_header_bytes.get_or(0),
        )
        self._previous = config
        LOGGER.debug("Resolved HTTP server binding %s.", remote_address)
        return config


__all__ = ["DEFAULT_BIND_ADDR", "HttpServerConfig", "HttpServerLoader", "Protocol"]
