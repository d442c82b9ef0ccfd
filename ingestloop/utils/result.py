"""Ok/Err values for checks that report problems instead of raising.

Config loading, preflight guards and provider option validation return a
``Result`` so the driver can turn a failed check into a terminal error
record, and the CLI into an exit code, without unwinding the event.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, NoReturn, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")


class ResultError(Exception):
    """Raised when the wrong side of a Result is read."""

    pass


@dataclass(frozen=True)
class Ok(Generic[T]):
    """A check that passed, carrying its value (often None)."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self) -> NoReturn:
        raise ResultError(f"Expected an error, got Ok({self.value!r})")

    def and_then(self, fn: Callable[[T], "Result[U, E]"]) -> "Result[U, E]":
        """Run the next check with this value."""
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True)
class Err(Generic[E]):
    """A failed check, usually carrying a ConfigError."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise ResultError(f"Expected a value, got Err({self.error!r})")

    def unwrap_err(self) -> E:
        return self.error

    def and_then(self, fn: Callable[[T], "Result[U, E]"]) -> "Err[E]":
        """Later checks are skipped once one has failed."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Union[Ok[T], Err[E]]


class ExitCode:
    """Process exit codes of the ingestloop CLI."""

    SUCCESS = 0
    GENERAL_ERROR = 1

    # Configuration (10-19)
    CONFIG_INVALID = 10
    UNKNOWN_SOURCE = 11

    # Executions (20-29)
    EXECUTION_NOT_FOUND = 20
    EXECUTION_BUSY = 21
    FETCH_FAILED = 22
