"""Parsing helpers shared by the CSV and PDF statement normalizers.

Everything here is fail-soft: malformed amounts and dates come back as
``None`` so the caller can flag the row and keep going instead of aborting
the whole file.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from io import StringIO

from ..models import PaymentMethod

DEFAULT_DATE_FORMATS: tuple[str, ...] = (
    "%m/%d/%Y",
    "%Y-%m-%d",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%Y/%m/%d",
)

# "check #1234", "CHECK 1234", "Check#1234"
CHECK_PATTERN = re.compile(r"^check\s*#?\s*(\d+)$", re.IGNORECASE)

_MONTH_DAY = re.compile(r"^\s*(\d{1,2})[/-](\d{1,2})\s*$")
_AMOUNT_CHARS = re.compile(r"[^\d.\-]")


# ---------------------------------------------------------------------------
# CSV loading
# ---------------------------------------------------------------------------


def read_csv_rows(csv_text: str) -> tuple[list[str], list[dict[str, str]]]:
    """Return ``(headers, rows)`` from CSV text.

    Headers are whitespace-trimmed (a leading BOM is dropped), cell values are
    trimmed, and rows whose cells are all blank are skipped. Extra cells past
    the header width are ignored.
    """

    text = csv_text.lstrip("\ufeff")
    with StringIO(text) as f:
        reader = csv.reader(f)
        headers: list[str] = []
        for raw_header in reader:
            if any(cell.strip() for cell in raw_header):
                headers = [h.strip() for h in raw_header]
                break
        rows: list[dict[str, str]] = []
        for raw in reader:
            if not any(cell.strip() for cell in raw):
                continue
            row = {h: (raw[i].strip() if i < len(raw) else "") for i, h in enumerate(headers) if h}
            rows.append(row)
    return headers, rows


def first_column_value(row: Mapping[str, str], candidates: Sequence[str]) -> str | None:
    """Return the first non-blank value among candidate column names."""

    for col in candidates:
        val = row.get(col)
        if val is not None and val.strip():
            return val.strip()
    return None


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------


def clean_amount(raw: str | None) -> Decimal | None:
    """Parse a bank amount cell, returning ``None`` when unusable.

    Handles ``$`` and thousands separators, leading ``-``/``+``, parentheses
    for negatives, and trailing ``CR`` (credit, positive) / ``DR`` (debit,
    negative) markers.
    """

    if raw is None:
        return None
    s = raw.strip().upper()
    if not s:
        return None
    negative = False
    if s.endswith("CR"):
        s = s[:-2].strip()
    elif s.endswith("DR"):
        negative = True
        s = s[:-2].strip()
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    s = _AMOUNT_CHARS.sub("", s)
    if s.startswith("-"):
        negative = True
        s = s.lstrip("-")
    if not s or s == ".":
        return None
    try:
        d = Decimal(s)
        if not d.is_finite():
            return None
        d = d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    return -d if negative else d


def split_columns_amount(debit_raw: str | None, credit_raw: str | None) -> Decimal | None:
    """Combine separate debit/credit cells: debits are outflows, credits inflows."""

    debit = clean_amount(debit_raw)
    if debit is not None and debit != 0:
        return -abs(debit)
    credit = clean_amount(credit_raw)
    if credit is not None and credit != 0:
        return abs(credit)
    if debit is not None or credit is not None:
        return Decimal("0.00")
    return None


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def parse_date(raw: str | None, formats: Sequence[str] = ()) -> str | None:
    """Parse ``raw`` against ``formats`` then the defaults; ISO string or ``None``."""

    if raw is None:
        return None
    s = raw.strip()
    if not s:
        return None
    # Some exports append a time: "01/05/2024 10:31 AM"
    first = s.split()[0]
    for fmt in (*formats, *DEFAULT_DATE_FORMATS):
        try:
            return datetime.strptime(first, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def month_day_to_iso(token: str | None, year: int | None) -> str | None:
    """Resolve an ``MM/DD`` statement token against the statement year.

    Returns ``None`` for malformed tokens (missing separator, missing month or
    day, out-of-range values) or when the year is unknown.
    """

    if token is None or year is None:
        return None
    m = _MONTH_DAY.match(token)
    if not m:
        return None
    month, day = int(m.group(1)), int(m.group(2))
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Checks and payment methods
# ---------------------------------------------------------------------------


def extract_check_number(description: str | None) -> str | None:
    """Return the number in a bare ``check #1234`` description, else ``None``."""

    if not description:
        return None
    m = CHECK_PATTERN.match(description.strip())
    return m.group(1) if m else None


def is_deposit_slip(bank_type: str | None) -> bool:
    if not bank_type:
        return False
    t = bank_type.upper()
    return "DEPOSIT" in t or "DSLIP" in t


def map_bank_type_to_payment_method(bank_type: str | None) -> PaymentMethod:
    """Map a bank's transaction type code (``DEBIT_CARD``, ``ACH_CREDIT``...)."""

    if not bank_type:
        return PaymentMethod.OTHER
    t = bank_type.strip().upper()
    # Deposited checks come before the generic CHECK match.
    if t in {"CHECK_DEPOSIT", "DSLIP"}:
        return PaymentMethod.CHECK_DEPOSIT
    if "CHECK" in t or "CHK" in t:
        return PaymentMethod.CHECK
    if "DEBIT" in t or "POS" in t or "POINT_OF_SALE" in t:
        return PaymentMethod.DEBIT_CARD
    if "CREDIT_CARD" in t or "VISA" in t or "MASTERCARD" in t:
        return PaymentMethod.CREDIT_CARD
    if any(k in t for k in ("ACH", "TRANSFER", "XFER", "WIRE", "EFT")):
        return PaymentMethod.BANK_TRANSFER
    if "ATM" in t:
        return PaymentMethod.CASH
    if "ZELLE" in t:
        return PaymentMethod.ZELLE
    if "PAYPAL" in t:
        return PaymentMethod.PAYPAL
    if "VENMO" in t:
        return PaymentMethod.VENMO
    return PaymentMethod.OTHER


__all__ = [
    "CHECK_PATTERN",
    "DEFAULT_DATE_FORMATS",
    "clean_amount",
    "extract_check_number",
    "first_column_value",
    "is_deposit_slip",
    "map_bank_type_to_payment_method",
    "month_day_to_iso",
    "parse_date",
    "read_csv_rows",
    "split_columns_amount",
]
