"""Generic column mapping for CSV exports that match no known bank profile.

A mapping is a ``{field: header}`` dict. Required fields are ``date``,
``description`` and either ``amount`` or at least one of ``debit``/``credit``.
Optional fields: ``type`` (explicit ``income``/``expense`` values or bank
codes) and ``check_number``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from .bank_formats import BankProfile

MAPPING_FIELDS: tuple[str, ...] = (
    "date",
    "description",
    "amount",
    "debit",
    "credit",
    "type",
    "check_number",
)

# Header words that suggest each field, checked in this order.
_FIELD_WORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("date", ("date", "posted", "booked")),
    ("debit", ("debit", "withdrawal", "money out")),
    ("credit", ("credit", "deposit", "money in")),
    ("amount", ("amount", "value", "sum")),
    ("check_number", ("check", "cheque")),
    ("type", ("transaction type", "type")),
    ("description", ("description", "narrative", "memo", "payee", "details", "name", "merchant")),
)


def guess_mapping(headers: Sequence[str]) -> dict[str, str]:
    """Guess a column mapping from header words; each header is used once."""

    mapping: dict[str, str] = {}
    used: set[str] = set()
    for field_name, words in _FIELD_WORDS:
        for header in headers:
            if not header or header in used:
                continue
            h = header.strip().lower()
            if any(w in h for w in words):
                mapping[field_name] = header
                used.add(header)
                break
    return mapping


def validate_mapping(
    mapping: Mapping[str, str | None],
    headers: Sequence[str] | None = None,
) -> list[str]:
    """Return human-readable problems with ``mapping`` (empty when valid)."""

    errors: list[str] = []
    unknown = sorted(k for k in mapping if k not in MAPPING_FIELDS)
    if unknown:
        errors.append(f"Unknown mapping fields: {', '.join(unknown)}")
    if not mapping.get("date"):
        errors.append("Date column is required")
    if not mapping.get("description"):
        errors.append("Description column is required")
    if not mapping.get("amount") and not (mapping.get("debit") or mapping.get("credit")):
        errors.append("Amount column (or Debit/Credit columns) is required")
    if headers is not None:
        header_set = set(headers)
        for key, col in mapping.items():
            if col and col not in header_set:
                errors.append(f"Column {col!r} for {key} is not in the file")
    return errors


def profile_from_mapping(
    mapping: Mapping[str, str | None],
    *,
    key: str = "custom",
    name: str = "Custom",
    date_format: str | None = None,
) -> BankProfile:
    """Wrap a validated mapping in a ``BankProfile`` so one row parser serves both."""

    columns = {k: (v,) for k, v in mapping.items() if v}
    split = "amount" not in columns and ("debit" in columns or "credit" in columns)
    return BankProfile(
        key=key,
        name=name,
        signature=frozenset(),
        columns=columns,
        date_formats=(date_format,) if date_format else (),
        amount_style="split" if split else "signed",
    )


__all__ = ["MAPPING_FIELDS", "guess_mapping", "profile_from_mapping", "validate_mapping"]
