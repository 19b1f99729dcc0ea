"""Exception types raised by the bookkeeping pipeline.

Validation failures that represent a caller mistake subclass the matching
builtin (``ValueError``, ``ZeroDivisionError``...) so callers can catch
either the specific type or the broad one. Garbled user data is not an error
here: parsers and currency helpers coerce it and report counts instead.
"""

from __future__ import annotations


class BookkeepingError(Exception):
    """Base class for pipeline errors."""


class InvalidSplit(BookkeepingError, ValueError):
    """A split request failed validation (empty parts, bad amounts, overrun)."""


class InvalidRule(BookkeepingError, ValueError):
    """A classification rule is missing keywords or a category."""


class InvalidMapping(BookkeepingError, ValueError):
    """A custom CSV column mapping lacks required fields."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid column mapping")


class DivisionByZero(BookkeepingError, ZeroDivisionError):
    """Currency division by a zero divisor."""


class ImportStateError(BookkeepingError, RuntimeError):
    """An import session operation was called from the wrong state."""


class TransactionNotFound(BookkeepingError, LookupError):
    """No stored transaction has the requested id."""


__all__ = [
    "BookkeepingError",
    "DivisionByZero",
    "ImportStateError",
    "InvalidMapping",
    "InvalidRule",
    "InvalidSplit",
    "TransactionNotFound",
]
