"""Cent-quantized currency arithmetic.

Every operation converts its operands to an integer number of cents
(``ROUND_HALF_UP``), performs integer arithmetic and converts back, so results
are always ``Decimal`` values with exactly two places:

    >>> add(0.1, 0.2)
    Decimal('0.30')

Inputs may be ``Decimal``, ``int``, ``float``, numeric strings or ``None``.
``None``, blanks and ``NaN`` count as zero so aggregates over partial data do
not blow up. The one hard failure is :func:`divide` by zero, which raises
:class:`~bookkeeping.errors.DivisionByZero`.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, TypeAlias

from .errors import DivisionByZero

Amount: TypeAlias = Decimal | int | float | str | None

_CENT = Decimal("0.01")
_ONE = Decimal(1)
_HUNDRED = Decimal(100)
_ZERO_TOLERANCE = Decimal("0.001")


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------


def safe_parse_number(value: Any) -> Decimal:
    """Return ``value`` as a finite ``Decimal``; anything unusable becomes 0."""

    if value is None or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, int):
        return Decimal(value)
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return Decimal(0)
        # repr() is the shortest round-tripping form: 0.1 -> "0.1"
        d = Decimal(repr(value))
    else:
        s = str(value).strip()
        if not s:
            return Decimal(0)
        try:
            d = Decimal(s)
        except InvalidOperation:
            return Decimal(0)
    return d if d.is_finite() else Decimal(0)


def _quantize_int(d: Decimal) -> int:
    # More digits than the context precision cannot be represented in cents
    try:
        return int(d.quantize(_ONE, rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return 0


def to_cents(value: Amount) -> int:
    """Dollars to integer cents, rounding half away from zero."""

    return _quantize_int(safe_parse_number(value) * _HUNDRED)


def from_cents(cents: int | Decimal | None) -> Decimal:
    """Integer cents to a two-place ``Decimal`` dollar amount."""

    whole = _quantize_int(safe_parse_number(cents))
    return (Decimal(whole) / _HUNDRED).quantize(_CENT)


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


def round_amount(value: Amount) -> Decimal:
    return from_cents(to_cents(value))


def add(a: Amount, b: Amount) -> Decimal:
    return from_cents(to_cents(a) + to_cents(b))


def subtract(a: Amount, b: Amount) -> Decimal:
    return from_cents(to_cents(a) - to_cents(b))


def multiply(amount: Amount, multiplier: Amount) -> Decimal:
    """``amount * multiplier`` where only ``amount`` is a currency value."""

    product = Decimal(to_cents(amount)) * safe_parse_number(multiplier)
    return from_cents(_quantize_int(product))


def divide(amount: Amount, divisor: Amount) -> Decimal:
    """``amount / divisor`` rounded to the cent.

    Raises
    ------
    DivisionByZero
        When ``divisor`` is zero (or missing, which counts as zero).
    """

    d = safe_parse_number(divisor)
    if d == 0:
        raise DivisionByZero(f"cannot divide {amount!r} by zero")
    return from_cents(_quantize_int(Decimal(to_cents(amount)) / d))


def sum_amounts(
    values: Iterable[Any],
    key: str | Callable[[Any], Amount] | None = None,
) -> Decimal:
    """Sum currency values in cents.

    ``key`` selects the amount from each element: a callable, or a field name
    looked up as a mapping key or attribute.
    """

    total = 0
    for item in values:
        if key is None:
            raw = item
        elif callable(key):
            raw = key(item)
        elif isinstance(item, Mapping):
            raw = item.get(key)
        else:
            raw = getattr(item, key, None)
        total += to_cents(raw)
    return from_cents(total)


def percentage_of(part: Amount, total: Amount) -> Decimal:
    """Percentage that ``part`` represents of ``total`` (``0`` when total is 0)."""

    total_cents = to_cents(total)
    if total_cents == 0:
        return Decimal("0.00")
    ratio = Decimal(to_cents(part)) / Decimal(total_cents) * _HUNDRED
    return from_cents(_quantize_int(ratio * _HUNDRED))


def calculate_percentage(amount: Amount, percentage: Amount) -> Decimal:
    """``percentage`` percent of ``amount``."""

    portion = Decimal(to_cents(amount)) * safe_parse_number(percentage) / _HUNDRED
    return from_cents(_quantize_int(portion))


def apply_tax(amount: Amount, rate: Amount) -> Decimal:
    return add(amount, calculate_percentage(amount, rate))


def remove_tax(amount: Amount, rate: Amount) -> Decimal:
    """Pre-tax amount from a tax-inclusive ``amount`` at ``rate`` percent."""

    return divide(amount, _ONE + safe_parse_number(rate) / _HUNDRED)


def is_zero_amount(value: Amount, tolerance: Amount = _ZERO_TOLERANCE) -> bool:
    return abs(safe_parse_number(value)) < safe_parse_number(tolerance)


# ---------------------------------------------------------------------------
# Display parsing/formatting (fail soft)
# ---------------------------------------------------------------------------


def parse_currency_string(raw: Any) -> Decimal:
    """Parse display notations such as ``$1,234.56``, ``-$500``, ``($500)``.

    Bank ``CR``/``DR`` suffixes are honored (``DR`` is negative). Anything
    unparseable returns ``Decimal("0.00")``.
    """

    if raw is None:
        return Decimal("0.00")
    if isinstance(raw, (int, float, Decimal)) and not isinstance(raw, bool):
        return round_amount(raw)

    s = str(raw).strip().upper()
    negative = False
    if s.endswith("CR"):
        s = s[:-2].rstrip()
    elif s.endswith("DR"):
        negative = True
        s = s[:-2].rstrip()

    # Strip sign, currency symbol and surrounding parentheses in any order.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s.startswith("$"):
            s = s[1:].lstrip()
            changed = True
        if len(s) >= 2 and s.startswith("(") and s.endswith(")"):
            negative = True
            s = s[1:-1].strip()
            changed = True
        if not changed:
            break

    s = s.replace(",", "").replace(" ", "")
    if not s:
        return Decimal("0.00")
    try:
        d = Decimal(s)
    except InvalidOperation:
        return Decimal("0.00")
    if not d.is_finite():
        return Decimal("0.00")
    value = round_amount(d)
    return -value if negative else value


def format_currency(value: Amount, *, show_sign: bool = False) -> str:
    """Render ``$1,234.56`` / ``-$1,234.56`` (``+$…`` with ``show_sign``)."""

    d = round_amount(value)
    if d < 0:
        sign = "-"
    elif show_sign and d > 0:
        sign = "+"
    else:
        sign = ""
    return f"{sign}${abs(d):,.2f}"


__all__ = [
    "Amount",
    "add",
    "apply_tax",
    "calculate_percentage",
    "divide",
    "format_currency",
    "from_cents",
    "is_zero_amount",
    "multiply",
    "parse_currency_string",
    "percentage_of",
    "remove_tax",
    "round_amount",
    "safe_parse_number",
    "subtract",
    "sum_amounts",
    "to_cents",
]
