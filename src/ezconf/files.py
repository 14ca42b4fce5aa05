"""Optional filesystem paths with permission policy helpers.

A :class:`FilePath` may be unset; read-style queries on an unset handle report
absence while mutations raise :class:`~ezconf.errors.NotConfiguredError`.
:class:`SecretFile` tightens the permission policy to owner-only access
and returns file contents wrapped in :class:`~ezconf.optional.Secret`.
"""
from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import TypeVar

from .errors import ConfigIOError, InvalidPathError, NotConfiguredError, PermissionDeniedError
from .optional import Option, Secret

LOGGER = logging.getLogger(__name__)

OWNER_READ = stat.S_IRUSR
GROUP_OTHER_ANY = stat.S_IRWXG | stat.S_IRWXO
GROUP_OTHER_WRITE = stat.S_IWGRP | stat.S_IWOTH

SecretT = TypeVar("SecretT", bound="SecretFile")


class FilePath:
    """A filesystem path that may or may not be configured."""

    default_require = 0
    default_forbid = 0
    default_mode = 0o644

    def __init__(self, path: str | os.PathLike[str] | None = None) -> None:
        """Create a handle, unset unless *path* is given."""
        self._path: Option[str] = Option.of(os.fspath(path) if path is not None else None)
        self._resolved = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    def get(self) -> tuple[str | None, bool]:
        """Return ``(path, True)`` when configured, else ``(None, False)``."""
        return self._path.get()

    def set(self, path: str | os.PathLike[str]) -> None:
        """Point the handle at *path* (unresolved)."""
        self._path = Option.some(os.fspath(path))
        self._resolved = False

    def clear(self) -> None:
        """Reset the handle to the unset state."""
        self._path = Option.none()
        self._resolved = False

    def is_some(self) -> bool:
        """Return True when a path is configured."""
        return self._path.is_some()

    def is_none(self) -> bool:
        """Return True when no path is configured."""
        return self._path.is_none()

    @property
    def resolved(self) -> bool:
        """Return True once :meth:`to_absolute` has canonicalised the path."""
        return self._resolved

    def as_option(self) -> Option[str]:
        """Return the raw path as an :class:`Option`."""
        return self._path

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def to_absolute(self) -> FilePath:
        """Canonicalise the path in place and return the handle."""
        raw = self._require_path("resolve")
        if self._resolved:
            return self
        self._path = Option.some(_canonicalize(raw))
        self._resolved = True
        return self

    def exists(self) -> bool:
        """Return True if the configured path exists (False when unset or invalid)."""
        raw, present = self._path.get()
        if not present or raw is None:
            return False
        try:
            return Path(_canonicalize(raw)).exists()
        except (InvalidPathError, OSError):
            return False

    def matches(self, other: str | os.PathLike[str]) -> bool:
        """Return True when *other* names the same location once canonicalised."""
        raw, present = self._path.get()
        if not present or raw is None:
            return False
        try:
            return _canonicalize(raw) == _canonicalize(os.fspath(other))
        except InvalidPathError:
            return False

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------
    def check_permissions(self, require: int | None = None, forbid: int | None = None) -> bool:
        """Return whether all *require* bits are set and no *forbid* bits are."""
        raw = self._require_path("check permissions of")
        require = self.default_require if require is None else require
        forbid = self.default_forbid if forbid is None else forbid
        try:
            mode = stat.S_IMODE(os.stat(raw).st_mode)
        except OSError as exc:
            raise ConfigIOError(f"Cannot stat {raw}: {exc}", path=raw) from exc
        return (mode & require) == require and (mode & forbid) == 0

    def ensure_permissions(self, require: int | None = None, forbid: int | None = None) -> None:
        """Raise :class:`PermissionDeniedError` unless :meth:`check_permissions` passes."""
        if self.check_permissions(require, forbid):
            return
        raw = self._require_path("check permissions of")
        mode = stat.S_IMODE(os.stat(raw).st_mode)
        require = self.default_require if require is None else require
        forbid = self.default_forbid if forbid is None else forbid
        raise PermissionDeniedError(
            f"Permissions {mode:04o} on {raw} do not satisfy policy "
            f"(require {require:04o}, forbid {forbid:04o}).",
            path=raw,
        )

    def set_permissions(self, mode: int) -> None:
        """Apply *mode* to the configured file."""
        raw = self._require_path("set permissions on")
        try:
            os.chmod(raw, mode)
        except OSError as exc:
            raise ConfigIOError(f"Cannot chmod {raw}: {exc}", path=raw) from exc

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------
    def read(self) -> tuple[Option[str], bool]:
        """Return ``(content, ok)``; ``ok`` is False when the file cannot be read.

        An empty file yields ``Option.some("")``.
        """
        raw, present = self._path.get()
        if not present or raw is None:
            return Option.none(), False
        try:
            text = Path(raw).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.debug("Unable to read %s: %s", raw, exc)
            return Option.none(), False
        return Option.some(text), True

    def read_bytes(self) -> bytes:
        """Return the raw file content, raising on any failure."""
        raw = self._require_path("read")
        try:
            return Path(raw).read_bytes()
        except OSError as exc:
            raise ConfigIOError(f"Cannot read {raw}: {exc}", path=raw) from exc

    def write(self, data: bytes | str, mode: int | None = None) -> None:
        """Atomically replace the file with *data* and apply *mode*."""
        raw = self._require_path("write")
        mode = self.default_mode if mode is None else mode
        payload = data.encode("utf-8") if isinstance(data, str) else data
        path = Path(raw)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
        except OSError as exc:
            raise ConfigIOError(f"Cannot write {raw}: {exc}", path=raw) from exc
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "wb") as handle:
                os.fchmod(handle.fileno(), mode)
                handle.write(payload)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise ConfigIOError(f"Cannot write {raw}: {exc}", path=raw) from exc
        finally:
            tmp_path.unlink(missing_ok=True)

    def remove(self) -> None:
        """Delete the configured file."""
        raw = self._require_path("remove")
        try:
            os.remove(raw)
        except OSError as exc:
            raise ConfigIOError(f"Cannot remove {raw}: {exc}", path=raw) from exc

    # ------------------------------------------------------------------
    def to_secret(self, kind: type[SecretT] | None = None) -> SecretT:
        """Move the path into a new secret handle, leaving this handle unset."""
        secret_cls = kind or SecretFile
        secret = secret_cls()
        secret._path = self._path
        secret._resolved = self._resolved
        self.clear()
        return secret  # type: ignore[return-value]

    def _require_path(self, action: str) -> str:
        raw, present = self._path.get()
        if not present or raw is None:
            raise NotConfiguredError(f"Cannot {action} file: no path configured.")
        return raw

    def __str__(self) -> str:
        raw, present = self._path.get()
        return raw if present and raw is not None else "<unset>"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._path!r})"


class SecretFile(FilePath):
    """A path to sensitive material readable only by its owner."""

    default_require = OWNER_READ
    default_forbid = GROUP_OTHER_ANY
    default_mode = 0o600

    def read(self) -> tuple[Secret[str], bool]:
        """Return ``(Secret(content), ok)``; refuses files with loose permissions."""
        raw, present = self._path.get()
        if not present or raw is None:
            return Secret.none(), False
        try:
            allowed = self.check_permissions()
        except ConfigIOError as exc:
            LOGGER.debug("Unable to stat secret file %s: %s", raw, exc)
            return Secret.none(), False
        if not allowed:
            LOGGER.warning(
                "Refusing to read %s: it must be owner-readable with no group/other access.",
                raw,
            )
            return Secret.none(), False
        content, ok = super().read()
        text, present = content.get()
        if not ok or not present or text is None:
            return Secret.none(), False
        return Secret.some(text), True


def _canonicalize(raw: str) -> str:
    if not raw.strip() or "\x00" in raw:
        raise InvalidPathError(f"Invalid path {raw!r}.", path=raw)
    try:
        return str(Path(raw).expanduser().resolve(strict=False))
    except (OSError, RuntimeError, ValueError) as exc:
        raise InvalidPathError(f"Cannot resolve path {raw!r}: {exc}", path=raw) from exc


__all__ = [
    "GROUP_OTHER_ANY",
    "GROUP_OTHER_WRITE",
    "OWNER_READ",
    "FilePath",
    "SecretFile",
]
