"""ezconf: layered configuration and TLS credential loading.

The public surface re-exports the optional containers, path handles,
credential loaders, TLS policy builder and the layered resolver.
"""
from __future__ import annotations

from .credentials import CertFile, CertificatePair, KeyKind, PrivateKeyFile, PublicKeyFile
from .errors import (
    ConfigError,
    ConfigIOError,
    EzconfError,
    IncompleteTLSConfigError,
    InvalidPathError,
    KeyCertMismatchError,
    MissingRequiredFieldError,
    NotConfiguredError,
    ParseError,
    PermissionDeniedError,
    UnknownKeyTypeError,
)
from .files import FilePath, SecretFile
from .optional import REDACTED, Option, Secret, first_some
from .resolver import FieldKind, FieldSpec, FlagRegistry, LayeredResolver, ResolvedValues
from .tls import TLSConfigLoader, TLSPolicy

__all__ = [
    "REDACTED",
    "CertFile",
    "CertificatePair",
    "ConfigError",
    "ConfigIOError",
    "EzconfError",
    "FieldKind",
    "FieldSpec",
    "FilePath",
    "FlagRegistry",
    "IncompleteTLSConfigError",
    "InvalidPathError",
    "KeyCertMismatchError",
    "KeyKind",
    "LayeredResolver",
    "MissingRequiredFieldError",
    "NotConfiguredError",
    "Option",
    "ParseError",
    "PermissionDeniedError",
    "PrivateKeyFile",
    "PublicKeyFile",
    "ResolvedValues",
    "Secret",
    "SecretFile",
    "TLSConfigLoader",
    "TLSPolicy",
    "UnknownKeyTypeError",
    "__version__",
    "first_some",
    "get_version",
]

# NOTE: The version is duplicated in ``pyproject.toml`` and managed by Hatch.
__version__ = "0.1.0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
