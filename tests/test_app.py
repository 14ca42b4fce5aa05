"""Tests for the service schema and its loader."""
from __future__ import annotations

from pathlib import Path

import pytest

from ezconf.app import APP_SCHEMA, new_loader, read_secret_file
from ezconf.errors import (
    ConfigIOError,
    InvalidPathError,
    MissingRequiredFieldError,
    PermissionDeniedError,
)
from ezconf.httpconf import Protocol
from ezconf.optional import REDACTED

BASE_ENV = {"EZCONF_SERVICE__NAME": "api"}


def test_schema_names_are_unique() -> None:
    names = [spec.name for spec in APP_SCHEMA]
    assert len(names) == len(set(names))


def test_defaults() -> None:
    """Only the service name is needed to build a plain HTTP config."""
    resolver = new_loader([], env=BASE_ENV)
    config = resolver.previous()

    assert config is not None
    assert config.service.name == "api"
    assert config.service.node_id == 1
    assert config.service.priority == 1
    assert config.service.secret_key.is_none()
    assert config.service.server.protocol is Protocol.HTTP
    assert config.service.server.port == 80
    assert config.service.server.remote_address == "http://127.0.0.1"
    assert not config.service.server.tls.enabled
    assert config.db.address == "127.0.0.1"
    assert config.db.port == 8080


def test_flag_overrides_environment() -> None:
    env = {**BASE_ENV, "EZCONF_SERVER__PORT": "8080"}
    config = new_loader(["--server-port", "9090", "--node", "3"], env=env).previous()

    assert config is not None
    assert config.service.server.port == 9090
    assert config.service.server.remote_address == "http://127.0.0.1:9090"
    assert config.service.node_id == 3


def test_later_cycle_without_flag_uses_environment() -> None:
    env = {**BASE_ENV, "EZCONF_SERVER__PORT": "8080"}
    resolver = new_loader(["--server-port", "9090"], env=env)

    config = resolver.update([])

    assert config.service.server.port == 8080
    assert resolver.diff()["server.port"] == (9090, 8080)


def test_missing_service_name() -> None:
    with pytest.raises(MissingRequiredFieldError, match="service.name"):
        new_loader([], env={})


def test_secret_key_is_read_and_redacted(tmp_path: Path) -> None:
    secret_path = tmp_path / "secret"
    secret_path.write_text("hunter2", encoding="utf-8")
    secret_path.chmod(0o600)
    env = {**BASE_ENV, "EZCONF_SERVICE__SECRET_KEY": str(secret_path)}

    config = new_loader([], env=env).previous()

    assert config is not None
    assert config.service.secret_key.reveal() == ("hunter2", True)
    assert config.to_dict()["service"]["secret_key"] == REDACTED  # type: ignore[index]
    assert "hunter2" not in repr(config)


def test_secret_key_with_loose_permissions(tmp_path: Path) -> None:
    secret_path = tmp_path / "secret"
    secret_path.write_text("hunter2", encoding="utf-8")
    secret_path.chmod(0o644)

    with pytest.raises(PermissionDeniedError):
        read_secret_file(secret_path)


def test_missing_secret_key_file(tmp_path: Path) -> None:
    env = {**BASE_ENV, "EZCONF_SERVICE__SECRET_KEY": str(tmp_path / "missing")}
    with pytest.raises(ConfigIOError, match="does not exist"):
        new_loader([], env=env)


def test_tls_enabled_from_environment(cert_pair) -> None:
    cert_path, key_path = cert_pair()
    env = {
        **BASE_ENV,
        "EZCONF_TLS__ENABLED": "true",
        "EZCONF_TLS__CERT": str(cert_path),
        "EZCONF_TLS__KEY": str(key_path),
        "EZCONF_TLS__SERVER_NAME": "example.test",
    }

    config = new_loader([], env=env).previous()

    assert config is not None
    server = config.service.server
    assert server.protocol is Protocol.HTTPS
    assert server.port == 443
    assert server.tls.enabled
    assert server.tls.server_name.get() == ("example.test", True)


def test_config_file_layer(tmp_path: Path) -> None:
    config_file = tmp_path / "ezconf.yml"
    config_file.write_text(
        "service:\n  name: from-file\nserver:\n  protocol: h2c\n  port: 8081\n",
        encoding="utf-8",
    )

    config = new_loader([], env={}, config_file=config_file).previous()

    assert config is not None
    assert config.service.name == "from-file"
    assert config.service.server.remote_address == "http://127.0.0.1:8081"


def test_handler_is_attached() -> None:
    def handler() -> None:
        return None

    config = new_loader([], env=BASE_ENV, handler=handler).previous()
    assert config is not None
    assert config.service.server.handler is handler


def test_empty_secret_key_path_is_invalid() -> None:
    """An explicitly empty secret path is rejected rather than ignored."""
    env = {**BASE_ENV, "EZCONF_SERVICE__SECRET_KEY": ""}
    with pytest.raises(InvalidPathError):
        new_loader([], env=env)
