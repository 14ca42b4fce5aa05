"""Tests for TLS policy construction."""
from __future__ import annotations

import dataclasses
import ssl
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from ezconf.credentials import CertFile, PrivateKeyFile
from ezconf.errors import (
    IncompleteTLSConfigError,
    KeyCertMismatchError,
    PermissionDeniedError,
)
from ezconf.optional import Option
from ezconf.tls import (
    CIPHER_SUITES,
    CURVE_PREFERENCES,
    MIN_TLS_VERSION,
    TLSConfigLoader,
    TLSPolicy,
)


def _loader(
    cert: Path | None,
    key: Path | None,
    *,
    enabled: bool = True,
    server_name: str | None = "example.test",
    skip_verify: bool = False,
) -> TLSConfigLoader:
    return TLSConfigLoader(
        enabled=Option.some(enabled),
        server_name=Option.of(server_name),
        skip_verify=Option.some(skip_verify),
        certificate=CertFile(cert),
        private_key=PrivateKeyFile(key),
    )


def test_disabled_policy_is_empty() -> None:
    """A disabled loader yields a real policy with no chain."""
    loader = TLSConfigLoader()

    policy = loader.update()

    assert not policy.enabled
    assert policy.certificate_chain == ()
    assert policy.certificate_pair is None
    assert policy.server_context() is None
    assert policy.client_context() is None
    assert policy.days_until_expiry() is None
    assert loader.previous() is policy


def test_disabled_policy_keeps_fixed_constants() -> None:
    policy = TLSPolicy.disabled()
    assert policy.min_version is MIN_TLS_VERSION
    assert policy.curve_preferences == CURVE_PREFERENCES
    assert policy.cipher_suites == CIPHER_SUITES


def test_constants_are_not_constructor_arguments() -> None:
    """Version floor and cipher allowlist cannot be overridden per policy."""
    with pytest.raises(TypeError):
        TLSPolicy(enabled=False, min_version=ssl.TLSVersion.TLSv1_2)  # type: ignore[call-arg]
    with pytest.raises(TypeError):
        TLSPolicy(enabled=False, cipher_suites=("NULL",))  # type: ignore[call-arg]


def test_policy_is_frozen() -> None:
    policy = TLSPolicy.disabled()
    with pytest.raises(dataclasses.FrozenInstanceError):
        policy.enabled = True  # type: ignore[misc]


def test_enabled_policy_requires_pair() -> None:
    with pytest.raises(IncompleteTLSConfigError):
        TLSPolicy(enabled=True, server_name=Option.some("example.test"))


def test_enabled_policy_loads_pair(cert_pair) -> None:
    """An enabled loader reads and pairs the certificate and key."""
    cert_path, key_path = cert_pair()
    loader = _loader(cert_path, key_path)

    policy = loader.update()

    assert policy.enabled
    assert policy.server_name == Option.some("example.test")
    assert len(policy.certificate_chain) == 1
    assert policy.certificate_pair is not None
    assert policy.certificate_pair.private_key.kind.value == "rsa"
    assert policy.to_dict()["certificate_chain"] == ["CN=example.test"]
    assert policy.to_dict()["min_version"] == "TLSv1_3"
    assert loader.previous() is policy


@pytest.mark.parametrize(
    ("cert", "key"),
    [(None, "key"), ("cert", None), (None, None)],
)
def test_enabled_without_cert_or_key(cert_pair, cert: str | None, key: str | None) -> None:
    cert_path, key_path = cert_pair()
    loader = _loader(cert_path if cert else None, key_path if key else None)

    with pytest.raises(IncompleteTLSConfigError, match="cert or key file was not set"):
        loader.update()


def test_enabled_without_server_name_requires_skip_verify(cert_pair) -> None:
    """No server name is only acceptable with skip_verify."""
    cert_path, key_path = cert_pair()

    with pytest.raises(IncompleteTLSConfigError):
        _loader(cert_path, key_path, server_name=None).update()

    policy = _loader(cert_path, key_path, server_name=None, skip_verify=True).update()
    assert policy.enabled
    assert policy.skip_verify
    assert policy.server_name.is_none()


def test_failed_update_keeps_previous(cert_pair, write_key) -> None:
    """A failing cycle does not replace the last good policy."""
    cert_path, key_path = cert_pair()
    loader = _loader(cert_path, key_path)
    good = loader.update()

    loader.private_key = PrivateKeyFile(write_key(name="other.pem"))
    with pytest.raises(KeyCertMismatchError):
        loader.update()

    assert loader.previous() is good


def test_loose_key_permissions_fail_update(cert_pair) -> None:
    cert_path, key_path = cert_pair(key_mode=0o644)
    with pytest.raises(PermissionDeniedError):
        _loader(cert_path, key_path).update()


def test_server_context_applies_policy(cert_pair) -> None:
    cert_path, key_path = cert_pair()
    policy = _loader(cert_path, key_path).update()

    context = policy.server_context()

    assert isinstance(context, ssl.SSLContext)
    assert context.minimum_version is ssl.TLSVersion.TLSv1_3


def test_client_context_skip_verify(cert_pair) -> None:
    cert_path, key_path = cert_pair()
    policy = _loader(cert_path, key_path, server_name=None, skip_verify=True).update()

    context = policy.client_context()

    assert context is not None
    assert context.check_hostname is False
    assert context.verify_mode == ssl.CERT_NONE


def test_client_context_verifies_by_default(cert_pair) -> None:
    cert_path, key_path = cert_pair()
    context = _loader(cert_path, key_path).update().client_context()

    assert context is not None
    assert context.check_hostname is True
    assert context.verify_mode == ssl.CERT_REQUIRED


def test_days_until_expiry(cert_pair) -> None:
    now = datetime.now(UTC)
    cert_path, key_path = cert_pair(valid_to=now + timedelta(days=10, hours=1))
    policy = _loader(cert_path, key_path).update()

    assert policy.days_until_expiry(now) == 10
    assert policy.not_valid_after is not None


def test_owner_read_only_key_enables_tls(cert_pair) -> None:
    cert_path, key_path = cert_pair(key_mode=0o400)

    policy = _loader(cert_path, key_path, server_name=None, skip_verify=True).update()

    assert policy.enabled
    assert policy.server_context() is not None


def test_disabled_policy_with_pair_builds_no_context(cert_pair) -> None:
    """Contexts follow the enabled flag even when a pair is attached."""
    cert_path, key_path = cert_pair()
    pair = _loader(cert_path, key_path).update().certificate_pair

    policy = TLSPolicy(enabled=False, certificate_pair=pair)

    assert policy.server_context() is None
    assert policy.client_context() is None
