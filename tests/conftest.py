"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.x509.oid import NameOID

KeyFactory = Callable[..., Path]
PairFactory = Callable[..., tuple[Path, Path]]


def generate_key(key_type: str = "rsa") -> object:
    """Return a fresh private key of *key_type* (rsa, ec or ed25519)."""
    if key_type == "rsa":
        return rsa.generate_private_key(public_exponent=65537, key_size=2048)
    if key_type == "ec":
        return ec.generate_private_key(ec.SECP256R1())
    if key_type == "ed25519":
        return ed25519.Ed25519PrivateKey.generate()
    raise ValueError(key_type)


def private_pem(key: object) -> bytes:
    """Return an unencrypted PKCS#8 PEM encoding of *key*."""
    return key.private_bytes(  # type: ignore[attr-defined]
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_pem(key: object) -> bytes:
    """Return the SubjectPublicKeyInfo PEM encoding of *key*'s public half."""
    return key.public_key().public_bytes(  # type: ignore[attr-defined]
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def build_certificate(
    key: object,
    *,
    common_name: str = "example.test",
    valid_to: datetime | None = None,
) -> x509.Certificate:
    """Return a self-signed certificate for *key*."""
    now = datetime.now(UTC)
    valid_to = valid_to or (now + timedelta(days=90))
    valid_from = min(now - timedelta(days=1), valid_to - timedelta(days=30))
    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    algorithm = None if isinstance(key, ed25519.Ed25519PrivateKey) else hashes.SHA256()
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())  # type: ignore[attr-defined]
        .serial_number(x509.random_serial_number())
        .not_valid_before(valid_from)
        .not_valid_after(valid_to)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .sign(key, algorithm)  # type: ignore[arg-type]
    )


@pytest.fixture
def write_key(tmp_path: Path) -> KeyFactory:
    """Return a factory writing a private key PEM file with the given mode."""

    def factory(
        key: object | None = None,
        *,
        name: str = "key.pem",
        mode: int = 0o600,
        key_type: str = "rsa",
    ) -> Path:
        key = key if key is not None else generate_key(key_type)
        path = tmp_path / name
        path.write_bytes(private_pem(key))
        path.chmod(mode)
        return path

    return factory


@pytest.fixture
def cert_pair(tmp_path: Path) -> PairFactory:
    """Return a factory creating a matching certificate/key pair on disk."""

    def factory(
        *,
        common_name: str = "example.test",
        key_type: str = "rsa",
        valid_to: datetime | None = None,
        cert_mode: int = 0o644,
        key_mode: int = 0o600,
    ) -> tuple[Path, Path]:
        key = generate_key(key_type)
        cert = build_certificate(key, common_name=common_name, valid_to=valid_to)
        safe = common_name.replace(".", "_")
        cert_path = tmp_path / f"{safe}.pem"
        key_path = tmp_path / f"{safe}.key"
        cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
        key_path.write_bytes(private_pem(key))
        cert_path.chmod(cert_mode)
        key_path.chmod(key_mode)
        return cert_path, key_path

    return factory
