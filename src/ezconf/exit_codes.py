"""Process exit codes used by the ezconf CLI."""
from __future__ import annotations

from enum import IntEnum

from .errors import (
    ConfigIOError,
    EzconfError,
    InvalidPathError,
    NotConfiguredError,
    PermissionDeniedError,
)


class ExitCode(IntEnum):
    """Well-known exit codes returned by every command."""

    OK = 0
    VALIDATION = 2
    ENVIRONMENT = 3


def exit_code_for(error: EzconfError) -> ExitCode:
    """Map a configuration failure onto an :class:`ExitCode`.

    Filesystem problems (missing files, bad modes) are environment errors;
    everything else is a validation error in the supplied configuration.
    """
    if isinstance(
        error,
        (ConfigIOError, PermissionDeniedError, InvalidPathError, NotConfiguredError),
    ):
        return ExitCode.ENVIRONMENT
    return ExitCode.VALIDATION
