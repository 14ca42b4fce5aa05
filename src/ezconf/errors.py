"""Exception hierarchy shared by every ezconf module.

All errors derive from :class:`EzconfError` so callers of a resolution cycle
can catch a single type. Low-level failures are re-raised with the field or
path that triggered them and chained to the original exception.
"""
from __future__ import annotations

from pathlib import Path


class EzconfError(RuntimeError):
    """Base class for configuration and credential loading failures."""

    def __init__(
        self,
        message: str,
        *,
        path: str | Path | None = None,
        field: str | None = None,
    ) -> None:
        """Store the message alongside optional path/field context."""
        super().__init__(message)
        self.path = str(path) if path is not None else None
        self.field = field


class ConfigError(EzconfError):
    """Raised when a configuration source cannot be parsed or coerced."""


class NotConfiguredError(EzconfError):
    """Raised when a value or path is required but was never set."""


class InvalidPathError(EzconfError):
    """Raised when a path string cannot be canonicalised."""


class ConfigIOError(EzconfError):
    """Raised when a file cannot be stat'ed, read, written or removed."""


class PermissionDeniedError(EzconfError):
    """Raised when a file's mode violates the required permission policy."""


class ParseError(EzconfError):
    """Raised when PEM content holds no usable certificate or key blocks."""


class KeyCertMismatchError(EzconfError):
    """Raised when a private key does not belong to the paired certificate."""


class UnknownKeyTypeError(EzconfError):
    """Raised when a private key uses an unsupported algorithm family."""


class IncompleteTLSConfigError(EzconfError):
    """Raised when TLS is enabled without the material needed to use it."""


class MissingRequiredFieldError(EzconfError):
    """Raised when no source supplies a value for a required field."""

    def __init__(self, field: str) -> None:
        """Record *field* and build a message naming it."""
        super().__init__(f"Missing required configuration field: {field}", field=field)


__all__ = [
    "ConfigError",
    "ConfigIOError",
    "EzconfError",
    "IncompleteTLSConfigError",
    "InvalidPathError",
    "KeyCertMismatchError",
    "MissingRequiredFieldError",
    "NotConfiguredError",
    "ParseError",
    "PermissionDeniedError",
    "UnknownKeyTypeError",
]
