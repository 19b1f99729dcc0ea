"""Bank statement normalization entry point.

``normalize_statement`` takes raw upload content and returns a
:class:`~bookkeeping.models.NormalizationResult` regardless of format:

* CSV exports go through the bank profiles in :mod:`bookkeeping.ingest.bank_formats`
  (or a caller-supplied column mapping, or a guessed generic mapping).
* PDF statements are reduced to text with ``pdfplumber`` and parsed by
  :mod:`bookkeeping.ingest.chase_pdf`.

The result carries the detection report (``detected_bank``,
``detected_bank_name``, ``requires_mapping``) alongside the transactions so an
upload UI can ask the user to confirm columns before anything is saved.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from pdfminer.pdfparser import PDFSyntaxError
from pdfplumber.utils.exceptions import PdfminerException

from .currency import sum_amounts
from .ingest import bank_formats
from .ingest.chase_pdf import extract_pdf_text, parse_chase_statement_text
from .ingest.csv_statement import parse_csv
from .logging_setup import get_logger
from .models import NormalizationResult, Transaction, TransactionType

_logger = get_logger("bookkeeping.normalizers")

_PDF_MAGIC = b"%PDF"
_PDF_FORMATS = {"chase_pdf", "pdf"}


def _is_pdf(content: bytes | str, bank_format: str | None, file_name: str | None) -> bool:
    if isinstance(content, bytes) and content.lstrip()[:4] == _PDF_MAGIC:
        return True
    if file_name and file_name.lower().endswith(".pdf"):
        return True
    return (bank_format or "").strip().lower() in _PDF_FORMATS


def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Older bank exports are Windows-1252
        return content.decode("cp1252", errors="replace")


def _normalize_pdf(content: bytes | str) -> NormalizationResult:
    if isinstance(content, str):
        # Already-extracted statement text
        return parse_chase_statement_text(content)
    try:
        text = extract_pdf_text(content)
    except (PdfminerException, PDFSyntaxError) as e:
        _logger.warning("normalize:pdf unreadable file: %s", e)
        return NormalizationResult(
            success=False,
            source_kind="pdf",
            error=f"Could not read PDF: {e}",
        )
    if not text.strip():
        return NormalizationResult(
            success=False,
            source_kind="pdf",
            error="PDF contains no extractable text (scanned statements are not supported)",
        )
    return parse_chase_statement_text(text)


def normalize_statement(
    content: bytes | str,
    bank_format: str | None = "auto",
    *,
    file_name: str | None = None,
    column_mapping: Mapping[str, str | None] | None = None,
    date_format: str | None = None,
) -> NormalizationResult:
    """Normalize one uploaded statement into canonical transactions.

    Parameters
    ----------
    content:
        Raw file bytes, or already-decoded text.
    bank_format:
        ``"auto"`` to detect, a CSV profile key, or ``"chase_pdf"``.
    file_name:
        Original upload name; a ``.pdf`` suffix selects the PDF parser.
    column_mapping:
        Optional ``{field: header}`` CSV mapping overriding detection.
    date_format:
        Optional ``strptime`` format for mapped CSV date columns.

    Raises
    ------
    InvalidMapping
        When ``column_mapping`` is supplied but unusable.
    ValueError
        When ``bank_format`` names no known profile.
    """

    if _is_pdf(content, bank_format, file_name):
        result = _normalize_pdf(content)
    else:
        text = _decode(content) if isinstance(content, bytes) else content
        result = parse_csv(
            text,
            bank_format,
            column_mapping=column_mapping,
            date_format=date_format,
        )
    _logger.debug(
        "normalize:done file=%s kind=%s success=%s parsed=%d",
        file_name,
        result.source_kind,
        result.success,
        result.parsed_count,
    )
    return result


def summarize_transactions(transactions: Iterable[Transaction]) -> dict[str, object]:
    """Totals for a preview screen: income, expenses (as a positive number), net."""

    txs = list(transactions)
    income = sum_amounts(t.amount for t in txs if t.type is TransactionType.INCOME)
    expenses = sum_amounts(t.amount for t in txs if t.type is TransactionType.EXPENSE)
    transfers = sum_amounts(t.amount for t in txs if t.type is TransactionType.TRANSFER)
    dates = sorted(t.date for t in txs if t.date)
    return {
        "count": len(txs),
        "totalIncome": income,
        "totalExpenses": abs(expenses),
        "totalTransfers": transfers,
        "net": income + expenses,
        "needsReview": sum(1 for t in txs if t.needs_review),
        "dateRangeStart": dates[0] if dates else None,
        "dateRangeEnd": dates[-1] if dates else None,
    }


def get_supported_banks() -> list[dict[str, str]]:
    """CSV bank profiles plus the Chase PDF statement parser."""

    banks = bank_formats.get_supported_banks()
    banks.append({"key": "chase_pdf", "name": "Chase (PDF statement)"})
    return banks


__all__ = [
    "get_supported_banks",
    "normalize_statement",
    "summarize_transactions",
]
