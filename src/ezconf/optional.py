"""Optional and secret value containers.

``Option`` distinguishes "configured" from "absent" without borrowing a value
of the wrapped type as a sentinel, so ``Option.some(0)`` and ``Option.some("")``
are both present. ``Secret`` carries the same presence semantics but never
renders its payload; the raw value is only reachable through ``reveal``.
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

from .errors import NotConfiguredError

T = TypeVar("T")
U = TypeVar("U")

REDACTED = "[REDACTED]"


class Option(Generic[T]):
    """A value that is either present (``Some``) or absent (``Nothing``)."""

    __slots__ = ("_present", "_value")

    def __init__(self, value: T | None = None, *, present: bool = False) -> None:
        """Create an option; prefer :meth:`some` / :meth:`none` / :meth:`of`."""
        self._present = present
        self._value = value if present else None

    @classmethod
    def some(cls, value: T) -> Option[T]:
        """Return a present option wrapping *value* (which may be falsy)."""
        return cls(value, present=True)

    @classmethod
    def none(cls) -> Option[T]:
        """Return an absent option."""
        return cls()

    @classmethod
    def of(cls, value: T | None) -> Option[T]:
        """Return ``some(value)`` unless *value* is ``None``."""
        if value is None:
            return cls()
        return cls(value, present=True)

    def get(self) -> tuple[T | None, bool]:
        """Return ``(value, True)`` when present, else ``(None, False)``."""
        return self._value, self._present

    def get_or(self, default: T) -> T:
        """Return the wrapped value, or *default* when absent."""
        if self._present:
            return self._value  # type: ignore[return-value]
        return default

    def unwrap(self, label: str = "value") -> T:
        """Return the wrapped value or raise :class:`NotConfiguredError`."""
        if not self._present:
            raise NotConfiguredError(f"{label} is not configured.", field=label)
        return self._value  # type: ignore[return-value]

    def is_some(self) -> bool:
        """Return True when a value is present."""
        return self._present

    def is_none(self) -> bool:
        """Return True when no value is present."""
        return not self._present

    def or_(self, fallback: Option[T]) -> Option[T]:
        """Return ``self`` if present, else *fallback*."""
        return self if self._present else fallback

    def map(self, func: Callable[[T], U]) -> Option[U]:
        """Apply *func* to a present value; absent stays absent."""
        if not self._present:
            return Option()
        return Option(func(self._value), present=True)  # type: ignore[arg-type]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Option) or isinstance(other, Secret) != isinstance(self, Secret):
            return NotImplemented
        return (self._present, self._value) == (other._present, other._value)

    def __hash__(self) -> int:
        return hash((self._present, self._value))

    def __repr__(self) -> str:
        if self._present:
            return f"Some({self._value!r})"
        return "Nothing"


class Secret(Option[T]):
    """An option whose payload is redacted from every textual rendering."""

    __slots__ = ()

    def get(self) -> tuple[T | None, bool]:  # noqa: D102
        raise TypeError("Secret values must be read with reveal().")

    def get_or(self, default: T) -> T:  # noqa: D102
        raise TypeError("Secret values must be read with reveal_or().")

    def unwrap(self, label: str = "secret") -> T:  # noqa: D102
        raise TypeError("Secret values must be read with reveal().")

    def reveal(self) -> tuple[T | None, bool]:
        """Return the raw ``(value, present)`` pair."""
        return self._value, self._present

    def reveal_or(self, default: T) -> T:
        """Return the raw value, or *default* when absent."""
        if self._present:
            return self._value  # type: ignore[return-value]
        return default

    def map(self, func: Callable[[T], U]) -> Secret[U]:
        """Transform the hidden payload, keeping the result redacted."""
        if not self._present:
            return Secret()
        return Secret(func(self._value), present=True)  # type: ignore[arg-type]

    def __hash__(self) -> int:
        return hash((Secret, self._present, self._value))

    def __str__(self) -> str:
        return REDACTED

    def __repr__(self) -> str:
        return REDACTED

    def __format__(self, format_spec: str) -> str:
        return format(REDACTED, format_spec)


def first_some(*options: Option[T]) -> Option[T]:
    """Return the first present option in precedence order (absent if none)."""
    result: Option[T] = Option()
    for option in reversed(options):
        result = option.or_(result)
    return result


__all__ = ["REDACTED", "Option", "Secret", "first_some"]
