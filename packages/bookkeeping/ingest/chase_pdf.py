"""Chase bank statement PDFs.

Text is pulled out of the PDF with ``pdfplumber`` and then walked line by
line. Chase prints transactions in titled sections, and the section decides
the transaction type:

* ``DEPOSITS AND ADDITIONS``: income
* ``CHECKS PAID``: expense, one ``<check no> <date> [<date>] <amount>`` line
  per check
* ``ATM & DEBIT CARD WITHDRAWALS``: expense, ``Card Purchase`` lines
* ``ELECTRONIC WITHDRAWALS``: expense, ``Orig CO Name:`` entries whose amount
  may sit on a following line

Every section ends at its ``Total ...`` line. Statements with no recognizable
section fall back to a generic ``MM/DD description amount`` line parser and
are reported with ``requires_mapping=True``.

Dates on the statement have no year; it comes from the statement period
header.
"""

from __future__ import annotations

import io
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import pdfplumber

from ..logging_setup import get_logger
from ..models import (
    AccountSummary,
    NormalizationResult,
    PaymentMethod,
    Transaction,
    TransactionType,
)
from .canonical import make_transaction
from .utils import clean_amount, month_day_to_iso

_logger = get_logger("bookkeeping.ingest.chase_pdf")

# Amounts above this are treated as extraction noise (merged columns).
_MAX_AMOUNT = Decimal("100000")

_CHASE_MARKERS = (
    "JPMorgan Chase",
    "Chase.com",
    "CHECKS PAID",
    "DEPOSITS AND ADDITIONS",
    "ATM & DEBIT CARD WITHDRAWALS",
    "ELECTRONIC WITHDRAWALS",
)


@dataclass(frozen=True, slots=True)
class _Section:
    key: str
    header: str
    tx_type: TransactionType
    payment_method: PaymentMethod | None


_SECTIONS: tuple[_Section, ...] = (
    _Section("deposits", "DEPOSITS AND ADDITIONS", TransactionType.INCOME, None),
    _Section("checks", "CHECKS PAID", TransactionType.EXPENSE, PaymentMethod.CHECK),
    _Section(
        "card",
        "ATM & DEBIT CARD WITHDRAWALS",
        TransactionType.EXPENSE,
        PaymentMethod.DEBIT_CARD,
    ),
    _Section(
        "electronic",
        "ELECTRONIC WITHDRAWALS",
        TransactionType.EXPENSE,
        PaymentMethod.BANK_TRANSFER,
    ),
)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_PERIOD_NUMERIC = re.compile(
    r"Statement\s+Period[:\s]+(\d{1,2}/\d{1,2}/\d{2,4})\s*-\s*(\d{1,2}/\d{1,2}/(\d{2,4}))",
    re.IGNORECASE,
)
_PERIOD_THROUGH = re.compile(
    r"([A-Z][a-z]+\s+\d{1,2},\s+\d{4})\s*through\s*([A-Z][a-z]+\s+\d{1,2},\s+(\d{4}))",
    re.IGNORECASE,
)
_ACCOUNT_NUMBER = re.compile(r"Account\s+(?:Number|No\.?)[:\s]+([\d ]*\d)", re.IGNORECASE)
_BEGINNING_BALANCE = re.compile(r"Beginning\s+Balance\s*\$?(-?[\d,]+\.\d{2})", re.IGNORECASE)
_ENDING_BALANCE = re.compile(r"Ending\s+Balance\s*\$?(-?[\d,]+\.\d{2})", re.IGNORECASE)

_LEADING_DATE = re.compile(r"^(\d{1,2}/\d{1,2})(?!\d)")
_TRAILING_AMOUNT = re.compile(r"\s\$?(\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d+\.\d{2})\s*$")
_AMOUNT_ONLY = re.compile(r"^\$?([\d,]+\.\d{2})$")
_ANY_AMOUNT = re.compile(r"\$?([\d,]+\.\d{2})")

# 533 ^ 01/03 01/03 400.00   |   538 * ^ 01/19 2,500.00
_CHECK_LINE = re.compile(
    r"(\d+)\s*[^\d\s]?\s*\^?\s*(\d{2}/\d{2})(?:\s*(\d{2}/\d{2}))?\s*\$?([\d,]+\.\d{2})"
)
# 01/02 Card Purchase 12/29 Chevron 0202648 Plantation FL Card 1819 $38.80
_CARD_LINE = re.compile(
    r"^(\d{2}/\d{2})\s*Card Purchase(?:\s+With Pin)?\s*(?:\d{2}/\d{2}\s+)?(.+?)"
    r"\s+[A-Z]{2}\s+Card\s+\d+\s*\$?([\d,]+\.\d{2})$"
)
_ELECTRONIC_LINE = re.compile(r"^(\d{2}/\d{2})\s*.*?Orig CO Name:\s*(.*)$")
_ELECTRONIC_COMPANY_END = re.compile(r"\s*(?:Orig ID|Orig\b|Co Entry|Desc Date|ID:)")
_GENERIC_LINE = re.compile(r"^(\d{1,2}[/-]\d{1,2})\s+(.+?)\s+(-?\$?-?[\d,]+\.\d{2})\s*$")

_LONG_ID = re.compile(r"\s+\d{7,}(?=\s|$)")
_TRAILING_STORE_AND_CITY = re.compile(r"\s+\d{4,6}\s+\S+$")


class _LineError(ValueError):
    pass


# ---------------------------------------------------------------------------
# Text extraction and statement metadata
# ---------------------------------------------------------------------------


def extract_pdf_text(data: bytes) -> str:
    """Return the text of every page of a PDF, pages separated by newlines."""

    with pdfplumber.open(io.BytesIO(data)) as pdf:
        pages = [page.extract_text() or "" for page in pdf.pages]
    return "\n".join(pages)


def is_chase_statement(text: str) -> bool:
    return any(marker in text for marker in _CHASE_MARKERS)


def statement_year(text: str) -> int | None:
    """Year of the statement period's end date, or ``None`` when absent."""

    m = _PERIOD_NUMERIC.search(text)
    if m:
        year = int(m.group(3))
        return year + 2000 if year < 100 else year
    m = _PERIOD_THROUGH.search(text)
    if m:
        return int(m.group(3))
    return None


def _balance(pattern: re.Pattern[str], text: str) -> Decimal | None:
    m = pattern.search(text)
    return clean_amount(m.group(1)) if m else None


def extract_account_summary(text: str, year: int | None = None) -> AccountSummary:
    m = _ACCOUNT_NUMBER.search(text)
    return AccountSummary(
        account_number=m.group(1).replace(" ", "") if m else None,
        beginning_balance=_balance(_BEGINNING_BALANCE, text),
        ending_balance=_balance(_ENDING_BALANCE, text),
        statement_year=year,
    )


# ---------------------------------------------------------------------------
# Line parsers
# ---------------------------------------------------------------------------


def _amount(raw: str) -> Decimal:
    amount = clean_amount(raw)
    if amount is None:
        raise _LineError(f"Invalid amount: {raw!r}")
    if amount == 0 or abs(amount) > _MAX_AMOUNT:
        raise _LineError(f"Amount out of range: {raw!r}")
    return amount


def _build(
    section: _Section,
    date_token: str,
    description: str,
    amount: Decimal,
    year: int,
    line_number: int,
) -> Transaction:
    date = month_day_to_iso(date_token, year)
    return make_transaction(
        date=date,
        description=description,
        amount=amount,
        type_hint=section.tx_type,
        payment_method=section.payment_method,
        section=section.key,
        row_number=line_number,
        parse_issue=None if date else f"Invalid date: {date_token!r}",
    )


def _clean_merchant(raw: str) -> str:
    name = _LONG_ID.sub("", raw)
    name = " ".join(name.split())
    trimmed = _TRAILING_STORE_AND_CITY.sub("", name)
    if trimmed == name and " " in name:
        # Drop the trailing city word
        trimmed = name.rsplit(" ", 1)[0]
    trimmed = trimmed.strip()
    return trimmed if len(trimmed) >= 2 else "Card Purchase"


def _parse_dated_line(line: str, section: _Section, year: int, n: int) -> Transaction | None:
    date_m = _LEADING_DATE.match(line)
    if not date_m:
        return None
    amount_m = _TRAILING_AMOUNT.search(line)
    if not amount_m:
        raise _LineError(f"No amount on line: {line!r}")
    description = line[date_m.end() : amount_m.start()].strip()
    if not description:
        raise _LineError(f"No description on line: {line!r}")
    return _build(section, date_m.group(1), description, _amount(amount_m.group(1)), year, n)


def _parse_check(line: str, section: _Section, year: int, n: int) -> Transaction | None:
    m = _CHECK_LINE.search(line)
    if not m:
        return None
    check_no, posted, paid, amount_raw = m.groups()
    # The second date, when printed, is the date the check was paid.
    date_token = paid or posted
    return _build(section, date_token, f"CHECK #{check_no}", _amount(amount_raw), year, n)


def _parse_card(line: str, section: _Section, year: int, n: int) -> Transaction | None:
    m = _CARD_LINE.match(line)
    if not m:
        # ATM withdrawals and fees share the section without the card layout
        return _parse_dated_line(line, section, year, n)
    date_token, merchant, amount_raw = m.groups()
    return _build(section, date_token, _clean_merchant(merchant), _amount(amount_raw), year, n)


def _parse_electronic(
    lines: list[str],
    i: int,
    section: _Section,
    year: int,
) -> tuple[Transaction | None, int]:
    """Parse the entry starting at ``lines[i]``; return it and the lines consumed."""

    line = lines[i]
    m = _ELECTRONIC_LINE.match(line)
    if not m:
        return _parse_dated_line(line, section, year, i + 1), 1
    date_token, rest = m.groups()
    company = _ELECTRONIC_COMPANY_END.split(rest, maxsplit=1)[0]
    company = _TRAILING_AMOUNT.sub("", " " + company).strip()

    consumed = 1
    amounts = _ANY_AMOUNT.findall(rest)
    amount_raw = amounts[-1] if amounts else None
    if amount_raw is None:
        for j in range(i + 1, min(i + 10, len(lines))):
            nxt = lines[j]
            if _LEADING_DATE.match(nxt) or nxt.lower().startswith("total"):
                break
            consumed = j - i + 1
            am = _AMOUNT_ONLY.match(nxt)
            if am:
                amount_raw = am.group(1)
                break
    if amount_raw is None:
        raise _LineError(f"No amount for electronic withdrawal: {line!r}")
    tx = _build(
        section,
        date_token,
        f"Electronic Payment: {company or 'Unknown'}",
        _amount(amount_raw),
        year,
        i + 1,
    )
    return tx, consumed


def _parse_generic(line: str, year: int, n: int) -> Transaction | None:
    m = _GENERIC_LINE.match(line)
    if not m:
        return None
    date_token, description, amount_raw = m.groups()
    amount = _amount(amount_raw)
    date = month_day_to_iso(date_token.replace("-", "/"), year)
    return make_transaction(
        date=date,
        description=description,
        amount=amount,
        row_number=n,
        parse_issue=None if date else f"Invalid date: {date_token!r}",
    )


# ---------------------------------------------------------------------------
# Statement walker
# ---------------------------------------------------------------------------


def _section_for(line: str) -> _Section | None:
    for section in _SECTIONS:
        if line.startswith(section.header):
            return section
    return None


def _is_noise(line: str) -> bool:
    upper = line.upper()
    return ("DATE" in upper and "DESCRIPTION" in upper) or upper.startswith("(CONTINUED)")


def _parse_sections(lines: list[str], year: int, result: NormalizationResult) -> None:
    current: _Section | None = None
    i = 0
    while i < len(lines):
        line = lines[i]
        n = i + 1
        step = 1
        if not line or _is_noise(line):
            i += 1
            continue
        started = _section_for(line)
        if started is not None:
            current = started
            i += 1
            continue
        if line.lower().startswith("total"):
            current = None
            i += 1
            continue
        if current is None:
            i += 1
            continue
        try:
            if current.key == "electronic":
                tx, step = _parse_electronic(lines, i, current, year)
            elif current.key == "checks":
                tx = _parse_check(line, current, year, n)
            elif current.key == "card":
                tx = _parse_card(line, current, year, n)
            else:
                tx = _parse_dated_line(line, current, year, n)
        except _LineError as e:
            result.errors.append({"row": n, "error": str(e)})
            tx = None
        if tx is not None:
            if tx.parse_issue:
                result.errors.append({"row": n, "error": tx.parse_issue})
            result.transactions.append(tx)
        i += step


def _parse_generic_lines(lines: list[str], year: int, result: NormalizationResult) -> None:
    for i, line in enumerate(lines):
        n = i + 1
        try:
            tx = _parse_generic(line, year, n)
        except _LineError as e:
            result.errors.append({"row": n, "error": str(e)})
            continue
        if tx is None:
            continue
        if tx.parse_issue:
            result.errors.append({"row": n, "error": tx.parse_issue})
        result.transactions.append(tx)


def _sort_key(tx: Transaction) -> tuple[bool, str]:
    return (tx.date is None, tx.date or "")


def parse_chase_statement_text(text: str, *, year: int | None = None) -> NormalizationResult:
    """Parse extracted statement text into canonical transactions.

    Parameters
    ----------
    text:
        Text of the whole statement, as returned by :func:`extract_pdf_text`.
    year:
        Statement year override. Defaults to the year printed in the
        statement period, then the current year.

    Returns
    -------
    NormalizationResult
        Transactions sorted by date (undated rows last), with
        ``source_kind="pdf"`` and the account summary attached.
    """

    lines = [ln.strip() for ln in (text or "").splitlines()]
    chase = is_chase_statement(text or "")
    resolved_year = year or statement_year(text or "")
    if resolved_year is None:
        resolved_year = datetime.now().year
        _logger.warning("normalize:pdf no statement period found; assuming year=%d", resolved_year)

    result = NormalizationResult(
        success=False,
        detected_bank="chase" if chase else "generic",
        detected_bank_name="Chase" if chase else "Generic",
        source_kind="pdf",
        total_rows=sum(1 for ln in lines if ln),
        account=extract_account_summary(text or "", resolved_year),
    )

    if chase:
        _parse_sections(lines, resolved_year, result)
    if not result.transactions:
        result.errors.clear()
        result.requires_mapping = True
        _parse_generic_lines(lines, resolved_year, result)

    result.transactions.sort(key=_sort_key)
    result.success = bool(result.transactions)
    if not result.success:
        result.error = "No transactions found in PDF statement"
    _logger.info(
        "normalize:pdf bank=%s year=%d parsed=%d errors=%d requires_mapping=%s",
        result.detected_bank,
        resolved_year,
        result.parsed_count,
        len(result.errors),
        result.requires_mapping,
    )
    return result


__all__ = [
    "extract_account_summary",
    "extract_pdf_text",
    "is_chase_statement",
    "parse_chase_statement_text",
    "statement_year",
]
