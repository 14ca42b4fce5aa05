"""Tests for the error taxonomy and exit code mapping."""
from __future__ import annotations

import pytest

from ezconf.errors import (
    ConfigError,
    ConfigIOError,
    EzconfError,
    IncompleteTLSConfigError,
    KeyCertMismatchError,
    MissingRequiredFieldError,
    NotConfiguredError,
    PermissionDeniedError,
)
from ezconf.exit_codes import ExitCode, exit_code_for


def test_missing_required_field_names_field() -> None:
    error = MissingRequiredFieldError("db.port")
    assert str(error) == "Missing required configuration field: db.port"
    assert error.field == "db.port"
    assert isinstance(error, EzconfError)
    assert isinstance(error, RuntimeError)


def test_path_context_is_stringified(tmp_path) -> None:
    error = ConfigIOError("boom", path=tmp_path / "x")
    assert error.path == str(tmp_path / "x")
    assert error.field is None


@pytest.mark.parametrize(
    ("error", "code"),
    [
        (ConfigIOError("x"), ExitCode.ENVIRONMENT),
        (PermissionDeniedError("x"), ExitCode.ENVIRONMENT),
        (NotConfiguredError("x"), ExitCode.ENVIRONMENT),
        (ConfigError("x"), ExitCode.VALIDATION),
        (KeyCertMismatchError("x"), ExitCode.VALIDATION),
        (IncompleteTLSConfigError("x"), ExitCode.VALIDATION),
        (MissingRequiredFieldError("a"), ExitCode.VALIDATION),
    ],
)
def test_exit_code_mapping(error: EzconfError, code: ExitCode) -> None:
    assert exit_code_for(error) is code
