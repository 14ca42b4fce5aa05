"""Service configuration assembled from the layered resolver.

``APP_SCHEMA`` is the field table for a typical networked service: identity
fields, an HTTP binding with TLS, and a database endpoint. Environment
variables use the ``EZCONF_`` prefix with double underscores for nesting::

    export EZCONF_SERVER__PORT=8443
    export EZCONF_TLS__ENABLED=true
"""
from __future__ import annotations

import functools
import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from .credentials import CertFile, PrivateKeyFile
from .errors import ConfigIOError
from .files import FilePath
from .httpconf import HttpServerConfig, HttpServerLoader, Protocol
from .optional import Option, Secret
from .resolver import FieldKind, FieldSpec, FlagRegistry, LayeredResolver, ResolvedValues
from .tls import TLSConfigLoader

APP_ENV_PREFIX = "EZCONF_"

APP_SCHEMA: tuple[FieldSpec, ...] = (
    FieldSpec("service.name", required=True, help="Service name."),
    FieldSpec("service.description", default=Option.some(""), help="Free-form description."),
    FieldSpec(
        "service.node_id",
        kind=FieldKind.INT,
        default=Option.some(1),
        required=True,
        flag="--node",
        help="Numeric node identifier.",
    ),
    FieldSpec("service.priority", kind=FieldKind.INT, default=Option.some(1)),
    FieldSpec(
        "service.secret_key",
        kind=FieldKind.SECRET_FILE,
        help="Path to a file holding the service secret (0600 or 0400).",
    ),
    FieldSpec("server.protocol", help="http, https, http2 or h2c."),
    FieldSpec("server.hostname", help="Public hostname; defaults to the bind address."),
    FieldSpec("server.bind_addr", default=Option.some("127.0.0.1")),
    FieldSpec("server.port", kind=FieldKind.PORT, help="Defaults to 80/443 by protocol."),
    FieldSpec("server.read_timeout", kind=FieldKind.FLOAT, default=Option.some(0.0)),
    FieldSpec("server.read_header_timeout", kind=FieldKind.FLOAT, default=Option.some(0.0)),
    FieldSpec("server.max_header_bytes", kind=FieldKind.INT, default=Option.some(0)),
    FieldSpec("tls.enabled", kind=FieldKind.BOOL, default=Option.some(False)),
    FieldSpec("tls.server_name"),
    FieldSpec("tls.cert", kind=FieldKind.PATH, default=Option.some("tls/cert.pem")),
    FieldSpec("tls.key", kind=FieldKind.SECRET_FILE, default=Option.some("tls/key.pem")),
    FieldSpec("tls.skip_verify", kind=FieldKind.BOOL, default=Option.some(False)),
    FieldSpec("db.address", default=Option.some("127.0.0.1")),
    FieldSpec("db.port", kind=FieldKind.PORT, default=Option.some(8080)),
)


@dataclass(frozen=True)
class DatabaseConfig:
    """Database endpoint."""

    address: str
    port: int

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"address": self.address, "port": self.port}


@dataclass(frozen=True)
class ServiceConfig:
    """Identity, secret and HTTP binding of the service."""

    name: str
    description: str
    node_id: int
    priority: int
    secret_key: Secret[str]
    server: HttpServerConfig

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation with the secret redacted."""
        return {
            "name": self.name,
            "description": self.description,
            "node_id": self.node_id,
            "priority": self.priority,
            "secret_key": str(self.secret_key),
            "server": self.server.to_dict(),
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration snapshot for the whole application."""

    service: ServiceConfig
    db: DatabaseConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {"service": self.service.to_dict(), "db": self.db.to_dict()}


def build_app_config(
    values: ResolvedValues,
    *,
    handler: Callable[..., object] | None = None,
) -> AppConfig:
    """Turn resolved field values into an :class:`AppConfig`."""
    tls_loader = TLSConfigLoader(
        enabled=values.option("tls.enabled"),
        server_name=values.option("tls.server_name"),
        skip_verify=values.option("tls.skip_verify"),
        certificate=CertFile(values.option("tls.cert").get_or(None)),
        private_key=PrivateKeyFile(values.option("tls.key").get_or(None)),
    )
    server_loader = HttpServerLoader(
        protocol=values.option("server.protocol").map(Protocol.parse),
        hostname=values.option("server.hostname"),
        bind_addr=values.option("server.bind_addr"),
        bind_port=values.option("server.port"),
        read_timeout=values.option("server.read_timeout"),
        read_header_timeout=values.option("server.read_header_timeout"),
        max_header_bytes=values.option("server.max_header_bytes"),
        tls=tls_loader,
        handler=handler,
    )
    server = server_loader.update()

    secret_path, has_secret = values.option("service.secret_key").get()
    secret_key: Secret[str] = (
        read_secret_file(secret_path) if has_secret else Secret.none()  # type: ignore[arg-type]
    )

    service = ServiceConfig(
        name=values["service.name"],  # type: ignore[arg-type]
        description=values.option("service.description").get_or(""),
        node_id=values["service.node_id"],  # type: ignore[arg-type]
        priority=values.option("service.priority").get_or(1),
        secret_key=secret_key,
        server=server,
    )
    db = DatabaseConfig(
        address=values.option("db.address").get_or("127.0.0.1"),
        port=values.option("db.port").get_or(8080),
    )
    return AppConfig(service=service, db=db)


def read_secret_file(path: str | os.PathLike[str]) -> Secret[str]:
    """Read a mandatory secret file, enforcing owner-only permissions."""
    handle = FilePath(path).to_absolute().to_secret()
    if not handle.exists():
        raise ConfigIOError(f"Secret file {handle} does not exist.", path=str(handle))
    handle.ensure_permissions()
    secret, ok = handle.read()
    if not ok:
        raise ConfigIOError(f"Cannot read secret file {handle}.", path=str(handle))
    return secret


def new_loader(
    argv: Sequence[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    config_file: str | os.PathLike[str] | None = None,
    flags: FlagRegistry | None = None,
    env_prefix: str = APP_ENV_PREFIX,
    handler: Callable[..., object] | None = None,
) -> LayeredResolver[AppConfig]:
    """Create a resolver for :data:`APP_SCHEMA` and run its first cycle."""
    resolver: LayeredResolver[AppConfig] = LayeredResolver(
        APP_SCHEMA,
        functools.partial(build_app_config, handler=handler),
        flags=flags,
        env=env,
        env_prefix=env_prefix,
        config_file=config_file,
    )
    resolver.update(argv)
    return resolver


__all__ = [
    "APP_ENV_PREFIX",
    "APP_SCHEMA",
    "AppConfig",
    "DatabaseConfig",
    "ServiceConfig",
    "build_app_config",
    "new_loader",
    "read_secret_file",
]
