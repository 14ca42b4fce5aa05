"""Layered configuration resolution.

Every field of a schema is resolved independently, taking the first value
found in this order:

1. A command-line flag registered through :class:`FlagRegistry`.
2. An environment variable, explicit or derived from the field name, e.g.::

       export MYAPP_SERVER__PORT=8443

3. A YAML configuration file (optional; a missing file is not an error).
4. The value from the previous successful cycle.
5. The static default declared on the :class:`FieldSpec`.

A schema is a plain tuple of :class:`FieldSpec` entries. Resolution cycles are
all-or-nothing: if any field or the ``build`` callable fails, the previous
snapshot stays current.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Generic, TypeVar

import yaml

from .errors import ConfigError, MissingRequiredFieldError
from .optional import REDACTED, Option, Secret

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

CONFIG_FILE_ENV_SUFFIX = "CONFIG_FILE"


class FieldKind(Enum):
    """Value types a field may resolve to."""

    STR = "str"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    PORT = "port"
    PATH = "path"
    SECRET_FILE = "secret_file"


_VERBATIM_KINDS = {FieldKind.STR, FieldKind.PATH, FieldKind.SECRET_FILE}
_INTEGER_KINDS = {FieldKind.INT, FieldKind.PORT}


@dataclass(frozen=True)
class FieldSpec:
    """Declarative description of one configuration field."""

    name: str
    kind: FieldKind = FieldKind.STR
    default: Option[object] = field(default_factory=Option.none)
    required: bool = False
    env: str | None = None
    flag: str | None = None
    help: str = ""
    secret: bool = False

    def __post_init__(self) -> None:
        """Reject names that cannot map onto flags and env variables."""
        parts = self.name.split(".")
        if not all(part and part.replace("_", "").isalnum() for part in parts):
            raise ValueError(f"Invalid field name {self.name!r}.")
        if not isinstance(self.default, Option):
            raise TypeError(f"Default for {self.name} must be an Option.")

    @property
    def dest(self) -> str:
        """Return the attribute name used by argparse."""
        return self.name.replace(".", "__")

    def env_name(self, prefix: str = "") -> str:
        """Return the environment variable consulted for this field."""
        if self.env:
            return self.env
        return prefix + "__".join(part.upper() for part in self.name.split("."))

    def flag_name(self) -> str:
        """Return the long command-line option for this field."""
        if self.flag:
            return self.flag if self.flag.startswith("-") else f"--{self.flag}"
        return "--" + self.name.replace(".", "-").replace("_", "-")


class ResolvedValues(Mapping[str, object]):
    """Immutable field values from one cycle, with their provenance."""

    def __init__(
        self,
        values: Mapping[str, object],
        sources: Mapping[str, str],
        secret_names: frozenset[str] = frozenset(),
    ) -> None:
        """Freeze *values* and *sources*."""
        self._values = MappingProxyType(dict(values))
        self._sources = MappingProxyType(dict(sources))
        self._secret_names = secret_names

    def __getitem__(self, name: str) -> object:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def option(self, name: str) -> Option[object]:
        """Return the value for *name* as an option (secrets stay wrapped)."""
        if name not in self._values:
            return Secret.none() if name in self._secret_names else Option.none()
        value = self._values[name]
        if isinstance(value, Secret):
            return value
        return Option.some(value)

    def source(self, name: str) -> str | None:
        """Return which layer supplied *name* (``flag``, ``env``, ...)."""
        return self._sources.get(name)

    @property
    def sources(self) -> Mapping[str, str]:
        """Return the provenance mapping."""
        return self._sources

    def diff(self, other: ResolvedValues | None) -> dict[str, tuple[object, object]]:
        """Return ``{name: (old, new)}`` for fields that differ from *other*."""
        before: Mapping[str, object] = other._values if other is not None else {}
        changed: dict[str, tuple[object, object]] = {}
        for name in sorted(set(before) | set(self._values)):
            old = before.get(name)
            new = self._values.get(name)
            if old != new:
                changed[name] = (old, new)
        return changed

    def to_dict(self) -> dict[str, object]:
        """Return a display-safe mapping with secrets redacted."""
        return {
            name: (REDACTED if isinstance(value, Secret) else value)
            for name, value in self._values.items()
        }

    def __repr__(self) -> str:
        return f"ResolvedValues({self.to_dict()!r})"


@dataclass(frozen=True)
class Snapshot(Generic[T]):
    """Result of a successful resolution cycle."""

    cycle: int
    values: ResolvedValues
    config: T


class FlagRegistry:
    """Command-line overrides for schema fields, backed by :mod:`argparse`."""

    def __init__(self, prog: str | None = None, description: str | None = None) -> None:
        """Create an empty registry."""
        self._parser = argparse.ArgumentParser(
            prog=prog,
            description=description,
            add_help=False,
            allow_abbrev=False,
            exit_on_error=False,
        )
        self._specs: dict[str, FieldSpec] = {}

    def register(self, spec: FieldSpec) -> bool:
        """Register a flag for *spec*; return False if it was already registered."""
        existing = self._specs.get(spec.name)
        if existing is not None:
            if existing == spec:
                return False
            raise ValueError(f"Field {spec.name!r} is already registered with a different spec.")
        kwargs: dict[str, object] = {
            "dest": spec.dest,
            "default": argparse.SUPPRESS,
            "help": spec.help or None,
        }
        if spec.kind is FieldKind.BOOL:
            kwargs.update(nargs="?", const="true", metavar="BOOL")
        else:
            kwargs["metavar"] = spec.kind.value.upper()
        try:
            self._parser.add_argument(spec.flag_name(), **kwargs)  # type: ignore[arg-type]
        except argparse.ArgumentError as exc:
            raise ValueError(f"Cannot register flag for {spec.name!r}: {exc}") from exc
        self._specs[spec.name] = spec
        return True

    def register_all(self, specs: Sequence[FieldSpec]) -> None:
        """Register every spec in *specs*."""
        for spec in specs:
            self.register(spec)

    def is_registered(self, name: str) -> bool:
        """Return True when a flag exists for field *name*."""
        return name in self._specs

    @property
    def specs(self) -> tuple[FieldSpec, ...]:
        """Return registered specs in registration order."""
        return tuple(self._specs.values())

    def format_help(self) -> str:
        """Return argparse-generated usage text for the registered flags."""
        return self._parser.format_help()

    def parse(self, argv: Sequence[str] | None = None) -> dict[str, str]:
        """Return ``{field: raw_value}`` for flags present in *argv*."""
        args = list(sys.argv[1:] if argv is None else argv)
        try:
            namespace, unknown = self._parser.parse_known_args(args)
        except argparse.ArgumentError as exc:
            raise ConfigError(f"Invalid command-line arguments: {exc}") from exc
        if unknown:
            raise ConfigError(f"Unrecognised command-line arguments: {' '.join(unknown)}")
        parsed = vars(namespace)
        return {
            spec.name: parsed[spec.dest]
            for spec in self._specs.values()
            if spec.dest in parsed
        }


class LayeredResolver(Generic[T]):
    """Merge flags, environment, file, previous and default values into snapshots."""

    def __init__(
        self,
        schema: Sequence[FieldSpec],
        build: Callable[[ResolvedValues], T],
        *,
        flags: FlagRegistry | None = None,
        env: Mapping[str, str] | None = None,
        env_prefix: str = "",
        config_file: str | os.PathLike[str] | None = None,
        sticky_previous: bool = True,
    ) -> None:
        """Register *schema* with *flags* and capture source settings."""
        names = [spec.name for spec in schema]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate field names in schema: {', '.join(duplicates)}.")
        self._schema = tuple(schema)
        self._build = build
        self._flags = flags if flags is not None else FlagRegistry()
        self._flags.register_all(self._schema)
        self._env = env
        self._env_prefix = env_prefix
        self._config_file = config_file
        self._sticky_previous = sticky_previous
        self._current: Snapshot[T] | None = None
        self._prior: Snapshot[T] | None = None
        self._cycles = 0

    @property
    def schema(self) -> tuple[FieldSpec, ...]:
        """Return the field table."""
        return self._schema

    @property
    def flags(self) -> FlagRegistry:
        """Return the flag registry backing command-line overrides."""
        return self._flags

    def previous(self) -> T | None:
        """Return the config from the last successful cycle."""
        return self._current.config if self._current is not None else None

    def previous_values(self) -> ResolvedValues | None:
        """Return the field values behind :meth:`previous`."""
        return self._current.values if self._current is not None else None

    def snapshot(self) -> Snapshot[T] | None:
        """Return the last successful snapshot."""
        return self._current

    def diff(self) -> dict[str, tuple[object, object]]:
        """Return field changes between the last two successful cycles."""
        if self._current is None:
            return {}
        prior = self._prior.values if self._prior is not None else None
        return self._current.values.diff(prior)

    def update(
        self,
        argv: Sequence[str] | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> T:
        """Run a resolution cycle and return the newly built config."""
        values = self.resolve_values(argv, env=env)
        config = self._build(values)
        self._cycles += 1
        self._prior = self._current
        self._current = Snapshot(cycle=self._cycles, values=values, config=config)
        LOGGER.debug("Resolution cycle %d complete (%d fields).", self._cycles, len(values))
        return config

    def resolve_values(
        self,
        argv: Sequence[str] | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> ResolvedValues:
        """Resolve every field without building or caching a snapshot."""
        environ = dict(env if env is not None else (self._env if self._env is not None else os.environ))
        flag_values = self._flags.parse(argv)
        file_values = self._load_file_values(environ)
        previous = self._current.values if self._current is not None else None

        values: dict[str, object] = {}
        sources: dict[str, str] = {}
        for spec in self._schema:
            env_name = spec.env_name(self._env_prefix)
            layers: list[tuple[str, Option[object]]] = [
                ("flag", _raw_option(flag_values, spec.name)),
                ("env", _raw_option(environ, env_name)),
                ("file", _raw_option(file_values, spec.name)),
            ]
            for label, option in layers:
                raw, present = option.get()
                if present:
                    values[spec.name] = _finalise(spec, _coerce(spec, raw, label))
                    sources[spec.name] = label
                    break
            else:
                if self._sticky_previous and previous is not None and spec.name in previous:
                    values[spec.name] = previous[spec.name]
                    sources[spec.name] = "previous"
                elif spec.default.is_some():
                    raw, _ = spec.default.get()
                    values[spec.name] = _finalise(spec, _coerce(spec, raw, "default"))
                    sources[spec.name] = "default"
                elif spec.required:
                    raise MissingRequiredFieldError(spec.name)
            if spec.name in sources:
                LOGGER.debug("Field %s resolved from %s.", spec.name, sources[spec.name])

        secret_names = frozenset(spec.name for spec in self._schema if spec.secret)
        return ResolvedValues(values, sources, secret_names)

    def _load_file_values(self, environ: Mapping[str, str]) -> dict[str, object]:
        path_value = self._config_file
        if path_value is None:
            path_value = environ.get(f"{self._env_prefix}{CONFIG_FILE_ENV_SUFFIX}") or None
        if path_value is None:
            return {}
        path = Path(path_value).expanduser()
        tree = _load_yaml_file(path)
        flat = _flatten(tree)
        known = {spec.name for spec in self._schema}
        unknown = set(flat) - known
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown configuration keys in {path}: {joined}.", path=path)
        return flat


def _raw_option(mapping: Mapping[str, object], key: str) -> Option[object]:
    if key in mapping:
        return Option.some(mapping[key])
    return Option.none()


def _finalise(spec: FieldSpec, value: object) -> object:
    if spec.secret:
        return Secret.some(value)
    return value


def _coerce(spec: FieldSpec, value: object, source: str) -> object:
    label = f"{spec.name} (from {source})"
    if isinstance(value, str) and spec.kind in _INTEGER_KINDS:
        value = _parse_decimal(value, label, spec.name)
    elif isinstance(value, str) and spec.kind not in _VERBATIM_KINDS:
        value = _coerce_value(value)
    if spec.kind in _VERBATIM_KINDS:
        if isinstance(value, Path):
            return str(value)
        if value is None or isinstance(value, (dict, list)):
            raise ConfigError(f"Expected {label} to be a scalar string.", field=spec.name)
        return str(value)
    if spec.kind is FieldKind.BOOL:
        if isinstance(value, bool):
            return value
        raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.", field=spec.name)
    if spec.kind is FieldKind.FLOAT:
        return _expect_float(value, label, spec.name)
    number = _expect_int(value, label, spec.name)
    if spec.kind is FieldKind.PORT and not 0 < number < 65536:
        raise ConfigError(f"{label} must be between 1 and 65535. Got {number}.", field=spec.name)
    return number


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def _expect_int(value: object, label: str, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.", field=name)
    if isinstance(value, int):
        return value
    raise ConfigError(
        f"Expected {label} to be an integer. Got {type(value).__name__}.", field=name
    )


def _parse_decimal(raw: str, label: str, name: str) -> int:
    # Base 10 only: YAML 1.1 would read "010" as octal and "1:20" as base 60.
    text = raw.strip()
    try:
        return int(text, 10)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer for {label}: {raw!r}.", field=name) from exc


def _expect_float(value: object, label: str, name: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.", field=name)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.", field=name) from exc
    raise ConfigError(f"Expected {label} to be numeric. Got {type(value).__name__}.", field=name)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        LOGGER.debug("Config file %s not found; skipping file layer.", path)
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {path}: {exc}", path=path) from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}", path=path) from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.", path=path)
    return _as_dict(data, f"file:{path}")


def _flatten(tree: Mapping[str, object], prefix: str = "") -> dict[str, object]:
    flat: dict[str, object] = {}
    for key, value in tree.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(_as_dict(value, dotted), f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "CONFIG_FILE_ENV_SUFFIX",
    "FieldKind",
    "FieldSpec",
    "FlagRegistry",
    "LayeredResolver",
    "ResolvedValues",
    "Snapshot",
]
