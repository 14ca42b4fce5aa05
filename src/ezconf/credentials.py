"""PEM certificate and key loaders built on :mod:`cryptography`.

Each loader is a :class:`~ezconf.files.FilePath` specialisation. Presence and
permission policy are verified before any content is parsed; PEM blocks are
framed here and every block is decoded by ``cryptography``.
"""
from __future__ import annotations

import logging
import re
import stat
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed25519, rsa
from cryptography.hazmat.primitives.asymmetric.types import (
    PrivateKeyTypes,
    PublicKeyTypes,
)

from .errors import (
    ConfigIOError,
    KeyCertMismatchError,
    NotConfiguredError,
    ParseError,
    UnknownKeyTypeError,
)
from .files import GROUP_OTHER_WRITE, FilePath, SecretFile

LOGGER = logging.getLogger(__name__)

_PEM_BLOCK = re.compile(
    rb"-----BEGIN (?P<label>[A-Z0-9 ]+)-----\r?\n.*?-----END (?P=label)-----",
    re.DOTALL,
)


class KeyKind(Enum):
    """Algorithm families recognised for key material."""

    RSA = "rsa"
    DSA = "dsa"
    ECDSA = "ecdsa"
    ED25519 = "ed25519"
    UNKNOWN = "unknown"


def classify_private_key(key: PrivateKeyTypes) -> KeyKind:
    """Return the :class:`KeyKind` for a parsed private key."""
    if isinstance(key, rsa.RSAPrivateKey):
        return KeyKind.RSA
    if isinstance(key, dsa.DSAPrivateKey):
        return KeyKind.DSA
    if isinstance(key, ec.EllipticCurvePrivateKey):
        return KeyKind.ECDSA
    if isinstance(key, ed25519.Ed25519PrivateKey):
        return KeyKind.ED25519
    return KeyKind.UNKNOWN


def classify_public_key(key: PublicKeyTypes) -> KeyKind:
    """Return the :class:`KeyKind` for a parsed public key."""
    if isinstance(key, rsa.RSAPublicKey):
        return KeyKind.RSA
    if isinstance(key, dsa.DSAPublicKey):
        return KeyKind.DSA
    if isinstance(key, ec.EllipticCurvePublicKey):
        return KeyKind.ECDSA
    if isinstance(key, ed25519.Ed25519PublicKey):
        return KeyKind.ED25519
    return KeyKind.UNKNOWN


@dataclass(frozen=True)
class PrivateKeyMaterial:
    """A parsed private key tagged with its algorithm family."""

    kind: KeyKind
    key: PrivateKeyTypes

    def public_der(self) -> bytes:
        """Return the SubjectPublicKeyInfo DER encoding of the public half."""
        return _spki(self.key.public_key())

    def __repr__(self) -> str:
        return f"PrivateKeyMaterial(kind={self.kind.value})"


@dataclass(frozen=True)
class CertificatePair:
    """A validated certificate chain together with its private key."""

    certificates: tuple[x509.Certificate, ...]
    private_key: PrivateKeyMaterial
    certificate_path: Path
    key_path: Path

    @property
    def leaf(self) -> x509.Certificate:
        """Return the end-entity certificate (first in the chain)."""
        return self.certificates[0]

    def __repr__(self) -> str:
        return (
            f"CertificatePair(certificate_path={str(self.certificate_path)!r}, "
            f"key_path={str(self.key_path)!r}, kind={self.private_key.kind.value})"
        )


class CertFile(FilePath):
    """Path to a PEM bundle holding one or more X.509 certificates."""

    default_require = stat.S_IRUSR
    default_forbid = GROUP_OTHER_WRITE

    def read_certificates(self) -> list[x509.Certificate]:
        """Return every certificate in the file, leaf first."""
        raw = _require_configured(self, "certificate")
        self.ensure_permissions()
        data = self.read_bytes()
        certificates: list[x509.Certificate] = []
        for label, block in _pem_blocks(data):
            if label not in {"CERTIFICATE", "TRUSTED CERTIFICATE", "X509 CERTIFICATE"}:
                continue
            try:
                certificates.append(x509.load_pem_x509_certificate(block))
            except ValueError as exc:
                LOGGER.debug("Skipping malformed certificate block in %s: %s", raw, exc)
        if not certificates:
            raise ParseError(f"No valid certificates found in {raw}.", path=raw)
        LOGGER.debug("Loaded %d certificate(s) from %s", len(certificates), raw)
        return certificates


class PrivateKeyFile(SecretFile):
    """Path to a PEM file holding exactly one unencrypted private key."""

    def read_private_key(self) -> PrivateKeyMaterial:
        """Parse and classify the single private key in the file."""
        raw = _require_configured(self, "private key")
        self.ensure_permissions()
        data = self.read_bytes()
        keys: list[PrivateKeyTypes] = []
        for label, block in _pem_blocks(data):
            if not label.endswith("PRIVATE KEY"):
                continue
            try:
                keys.append(serialization.load_pem_private_key(block, password=None))
            except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
                LOGGER.debug("Skipping unusable private key block in %s: %s", raw, exc)
        if not keys:
            raise ParseError(f"No valid private key found in {raw}.", path=raw)
        if len(keys) > 1:
            raise ParseError(
                f"Expected exactly one private key in {raw}, found {len(keys)}.",
                path=raw,
            )
        key = keys[0]
        kind = classify_private_key(key)
        if kind is KeyKind.UNKNOWN:
            raise UnknownKeyTypeError(
                f"Unsupported private key type {type(key).__name__} in {raw}.",
                path=raw,
            )
        return PrivateKeyMaterial(kind=kind, key=key)

    def read_certificate(self, cert: CertFile) -> CertificatePair:
        """Load *cert* and this key, and verify they belong together."""
        certificates = cert.read_certificates()
        material = self.read_private_key()
        if _spki(certificates[0].public_key()) != material.public_der():
            raise KeyCertMismatchError(
                f"Private key {self} does not match certificate {cert}.",
                path=str(self),
            )
        return CertificatePair(
            certificates=tuple(certificates),
            private_key=material,
            certificate_path=Path(str(cert)),
            key_path=Path(str(self)),
        )


class PublicKeyFile(FilePath):
    """Path to a PEM file holding one or more public keys."""

    default_require = stat.S_IRUSR
    default_forbid = GROUP_OTHER_WRITE

    def read_public_keys(self) -> list[PublicKeyTypes]:
        """Return every public key in the file."""
        raw = _require_configured(self, "public key")
        self.ensure_permissions()
        data = self.read_bytes()
        keys: list[PublicKeyTypes] = []
        for label, block in _pem_blocks(data):
            if not label.endswith("PUBLIC KEY"):
                continue
            try:
                keys.append(serialization.load_pem_public_key(block))
            except (ValueError, UnsupportedAlgorithm) as exc:
                LOGGER.debug("Skipping malformed public key block in %s: %s", raw, exc)
        if not keys:
            raise ParseError(f"No valid public keys found in {raw}.", path=raw)
        return keys


def _require_configured(handle: FilePath, label: str) -> str:
    raw, present = handle.get()
    if not present or raw is None:
        raise NotConfiguredError(f"No {label} file configured.")
    if not handle.exists():
        raise ConfigIOError(f"{label.capitalize()} file {raw} does not exist.", path=raw)
    return raw


def _pem_blocks(data: bytes) -> list[tuple[str, bytes]]:
    return [
        (match.group("label").decode("ascii"), match.group(0))
        for match in _PEM_BLOCK.finditer(data)
    ]


def _spki(public_key: PublicKeyTypes) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


__all__ = [
    "CertFile",
    "CertificatePair",
    "KeyKind",
    "PrivateKeyFile",
    "PrivateKeyMaterial",
    "PublicKeyFile",
    "classify_private_key",
    "classify_public_key",
]
