"""Typed success/failure container for data-source fetches.

Fetching dashboard payloads over HTTP fails routinely (server restarts,
timeouts, demo mode toggles). The loader must keep going when one source
fails, so the client returns a `Result[T, E]` instead of raising:

- `Ok(value)` carries a decoded JSON payload,
- `Err(error)` carries a human-readable reason string.

Example
-------
>>> from dashkeeper.core.result import ok, err
>>> ok({"queries": []}).map(lambda p: len(p["queries"])).unwrap()
0
>>> err("timeout").get_or({})
{}
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar, cast

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")


class Result(Generic[T, E]):
    """Either an `Ok[T]` payload or an `Err[E]` reason."""

    # ----- Introspection -----------------------------------------------------
    def is_ok(self) -> bool:
        """Return ``True`` for an :class:`Ok` value."""
        return isinstance(self, Ok)

    def is_err(self) -> bool:
        """Return ``True`` for an :class:`Err` value."""
        return isinstance(self, Err)

    # ----- Access ------------------------------------------------------------
    def unwrap(self) -> T:
        """Return the payload, raising ``RuntimeError`` on ``Err``."""
        if isinstance(self, Ok):
            return cast(Ok[T, E], self).value
        raise RuntimeError(f"unwrap() on failed fetch: {self!r}")

    def unwrap_err(self) -> E:
        """Return the failure reason, raising ``RuntimeError`` on ``Ok``."""
        if isinstance(self, Err):
            return cast(Err[T, E], self).error
        raise RuntimeError(f"unwrap_err() on successful fetch: {self!r}")

    def get_or(self, default: T) -> T:
        """Return the payload, or ``default`` when this is ``Err``."""
        if isinstance(self, Ok):
            return cast(Ok[T, E], self).value
        return default

    # ----- Combinators -------------------------------------------------------
    def map(self, fn: Callable[[T], U]) -> Result[U, E]:
        """Transform the payload; failures pass through untouched."""
        if isinstance(self, Ok):
            return Ok(fn(cast(Ok[T, E], self).value))
        return cast(Result[U, E], self)

    def __repr__(self) -> str:  # pragma: no cover - trivial representation
        if isinstance(self, Ok):
            return f"Ok({cast(Ok[T, E], self).value!r})"
        if isinstance(self, Err):
            return f"Err({cast(Err[T, E], self).error!r})"
        return "Result(?)"


@dataclass(frozen=True)
class Ok(Result[T, E]):
    """Successful fetch wrapping a payload of type ``T``."""

    value: T


@dataclass(frozen=True)
class Err(Result[T, E]):
    """Failed fetch wrapping a reason of type ``E``."""

    error: E


def ok(value: T) -> Result[T, E]:
    """Construct :class:`Ok` with call-site type inference."""
    return Ok(value)


def err(error: E) -> Result[T, E]:
    """Construct :class:`Err` with call-site type inference."""
    return Err(error)


__all__ = ["Err", "Ok", "Result", "err", "ok"]
