"""CSV statement parsing into canonical transactions.

The bank profile is either selected explicitly, detected from the header row,
built from a caller-supplied column mapping, or (when nothing matches) guessed
from header words with ``requires_mapping=True`` so the caller can confirm or
correct the columns.
"""

from __future__ import annotations

from collections.abc import Mapping

from ..errors import InvalidMapping
from ..logging_setup import get_logger
from ..models import NormalizationResult, Transaction, TransactionType
from .bank_formats import BankProfile, detect_bank_format, get_profile, type_hint_from_code
from .canonical import make_transaction
from .generic import guess_mapping, profile_from_mapping, validate_mapping
from .utils import (
    clean_amount,
    first_column_value,
    is_deposit_slip,
    parse_date,
    read_csv_rows,
    split_columns_amount,
)

_SAMPLE_ROWS = 5
# Row numbers reported to users count the header line and start at 1.
_FIRST_DATA_ROW = 2

_logger = get_logger("bookkeeping.ingest.csv")


class _RowError(ValueError):
    pass


def _row_type_hint(row: Mapping[str, str], profile: BankProfile) -> TransactionType | None:
    by_type = type_hint_from_code(first_column_value(row, profile.column("type")))
    if by_type is TransactionType.TRANSFER:
        return by_type
    by_direction = type_hint_from_code(first_column_value(row, profile.column("direction")))
    return by_direction or by_type


def _normalize_row(row: Mapping[str, str], profile: BankProfile, row_number: int) -> Transaction:
    description = first_column_value(row, profile.column("description")) or ""

    hint: TransactionType | None
    if profile.amount_style == "split":
        debit_raw = first_column_value(row, profile.column("debit"))
        credit_raw = first_column_value(row, profile.column("credit"))
        amount = split_columns_amount(debit_raw, credit_raw)
        if amount is None:
            raise _RowError("Invalid amount: no debit or credit value")
        hint = _row_type_hint(row, profile)
        if hint is not TransactionType.TRANSFER:
            hint = TransactionType.EXPENSE if amount < 0 else TransactionType.INCOME
    else:
        amount_raw = first_column_value(row, profile.column("amount"))
        amount = clean_amount(amount_raw)
        if amount is None:
            raise _RowError(f"Invalid amount: {amount_raw!r}")
        if profile.invert_sign:
            amount = -amount
        hint = _row_type_hint(row, profile)

    date_raw = first_column_value(row, profile.column("date"))
    date = parse_date(date_raw, profile.date_formats)
    issue = None
    if date is None:
        issue = f"Invalid date: {date_raw!r}" if date_raw else "Missing date"

    type_value = first_column_value(row, profile.column("type"))
    direction = first_column_value(row, profile.column("direction"))
    check_number = first_column_value(row, profile.column("check_number"))
    if is_deposit_slip(direction):
        check_number = None
    return make_transaction(
        date=date,
        description=description,
        amount=amount,
        explicit_type=type_value,
        type_hint=hint,
        bank_type=type_value,
        check_number=check_number,
        row_number=row_number,
        parse_issue=issue,
    )


def _select_profile(
    headers: list[str],
    bank_format: str | None,
    column_mapping: Mapping[str, str | None] | None,
    date_format: str | None,
) -> tuple[BankProfile | None, bool]:
    """Return ``(profile, requires_mapping)``."""

    if column_mapping:
        problems = validate_mapping(column_mapping, headers)
        if problems:
            raise InvalidMapping(problems)
        return profile_from_mapping(column_mapping, date_format=date_format), False

    if bank_format and bank_format.strip().lower() not in {"auto", "custom"}:
        profile = get_profile(bank_format)
        if profile is None:
            raise ValueError(f"unknown bank format: {bank_format!r}")
        return profile, False

    detected = detect_bank_format(headers)
    if detected is not None:
        return detected, False

    guessed = guess_mapping(headers)
    if validate_mapping(guessed):
        return None, True
    generic = profile_from_mapping(guessed, key="generic", name="Generic", date_format=date_format)
    return generic, True


def parse_csv(
    csv_text: str,
    bank_format: str | None = "auto",
    *,
    column_mapping: Mapping[str, str | None] | None = None,
    date_format: str | None = None,
) -> NormalizationResult:
    """Parse CSV text into canonical transactions.

    Parameters
    ----------
    csv_text:
        Decoded file content.
    bank_format:
        A profile key (``"chase"``, ``"amex"``...), or ``"auto"`` to detect
        from the header row.
    column_mapping:
        Optional ``{field: header}`` mapping that overrides detection.
    date_format:
        Optional ``strptime`` format tried before the defaults for mapped
        columns.

    Raises
    ------
    InvalidMapping
        When ``column_mapping`` lacks required fields or names missing columns.
    ValueError
        When ``bank_format`` names no known profile.
    """

    headers, rows = read_csv_rows(csv_text)
    if not rows:
        return NormalizationResult(
            success=False,
            headers=headers,
            requires_mapping=False,
            error="CSV file is empty or has no data rows",
        )

    profile, requires_mapping = _select_profile(headers, bank_format, column_mapping, date_format)
    result = NormalizationResult(
        success=False,
        detected_bank=profile.key if profile else None,
        detected_bank_name=profile.name if profile else "Unknown",
        requires_mapping=requires_mapping,
        headers=headers,
        sample_rows=[dict(r) for r in rows[:_SAMPLE_ROWS]],
        total_rows=len(rows),
    )
    if profile is None:
        result.error = (
            "Could not identify date, description and amount columns; "
            "provide a column mapping"
        )
        return result

    for i, row in enumerate(rows):
        row_number = i + _FIRST_DATA_ROW
        try:
            tx = _normalize_row(row, profile, row_number)
        except _RowError as e:
            result.errors.append({"row": row_number, "error": str(e)})
            continue
        if tx.parse_issue:
            result.errors.append({"row": row_number, "error": tx.parse_issue})
        result.transactions.append(tx)

    result.success = bool(result.transactions)
    if not result.success:
        result.error = "No valid transactions found in CSV"
    _logger.info(
        "normalize:csv bank=%s rows=%d parsed=%d errors=%d requires_mapping=%s",
        result.detected_bank,
        result.total_rows,
        result.parsed_count,
        len(result.errors),
        result.requires_mapping,
    )
    return result


__all__ = ["parse_csv"]
