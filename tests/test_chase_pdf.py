import textwrap
from decimal import Decimal
from pathlib import Path

import pytest

import bookkeeping.normalizers as normalizers_mod
from bookkeeping.ingest.chase_pdf import parse_chase_statement_text, statement_year
from bookkeeping.models import PaymentMethod, TransactionType
from bookkeeping.normalizers import normalize_statement


def _dedent(s: str) -> str:
    return textwrap.dedent(s).lstrip("\n").rstrip()


# Text as pdfplumber extracts it from a January 2024 checking statement
STATEMENT_TEXT = (
    Path(__file__).resolve().parent / "data/chase_statement_jan_2024.txt"
).read_text(encoding="utf-8")


def test_sections_decide_type_and_sign():
    result = parse_chase_statement_text(STATEMENT_TEXT)

    assert result.success
    assert result.source_kind == "pdf"
    assert result.detected_bank == "chase"
    assert result.requires_mapping is False
    assert result.errors == []
    assert result.parsed_count == 8

    by_section: dict[str, list] = {}
    for tx in result.transactions:
        by_section.setdefault(tx.section, []).append(tx)

    assert {tx.type for tx in by_section["deposits"]} == {TransactionType.INCOME}
    assert all(tx.amount > 0 for tx in by_section["deposits"])
    for key in ("checks", "card", "electronic"):
        assert {tx.type for tx in by_section[key]} == {TransactionType.EXPENSE}
        assert all(tx.amount < 0 for tx in by_section[key])


def test_transactions_sorted_by_date_with_statement_year():
    result = parse_chase_statement_text(STATEMENT_TEXT)

    assert [tx.date for tx in result.transactions] == [
        "2024-01-02",
        "2024-01-05",
        "2024-01-08",
        "2024-01-10",
        "2024-01-12",
        "2024-01-15",
        "2024-01-19",
        "2024-01-20",
    ]


def test_checks_have_numbers_and_no_payee():
    result = parse_chase_statement_text(STATEMENT_TEXT)
    checks = [tx for tx in result.transactions if tx.section == "checks"]

    assert [(c.description, c.check_number, c.amount) for c in checks] == [
        ("CHECK #533", "533", Decimal("-400.00")),
        ("CHECK #538", "538", Decimal("-2500.00")),
    ]
    assert all(c.payee is None for c in checks)
    assert all(c.payment_method is PaymentMethod.CHECK for c in checks)
    # The paid date is used when the statement prints both dates
    assert checks[0].date == "2024-01-08"


def test_card_and_electronic_descriptions():
    result = parse_chase_statement_text(STATEMENT_TEXT)
    descriptions = {tx.description: tx for tx in result.transactions}

    assert descriptions["Chevron"].amount == Decimal("-38.80")
    assert descriptions["Chevron"].payment_method is PaymentMethod.DEBIT_CARD
    assert "ATM Withdrawal 01/10 123 Main St" in descriptions
    # Amount found on a later line
    assert descriptions["Electronic Payment: Comcast"].amount == Decimal("-95.99")
    assert descriptions["Electronic Payment: Irs Usataxpymt"].amount == Decimal("-120.00")


def test_account_summary():
    account = parse_chase_statement_text(STATEMENT_TEXT).account

    assert account is not None
    assert account.account_number == "000000123456789"
    assert account.beginning_balance == Decimal("10000.00")
    assert account.ending_balance == Decimal("12000.00")
    assert account.statement_year == 2024


def test_malformed_date_keeps_row_flagged():
    text = _dedent(
        """
        JPMorgan Chase Bank, N.A.
        Statement Period: 03/01/23 - 03/31/23
        DEPOSITS AND ADDITIONS
        13/45 Wire Transfer In 75.00
        03/02 Mobile Deposit 20.00
        Total Deposits and Additions $95.00
        """
    )
    result = parse_chase_statement_text(text)

    assert statement_year(text) == 2023
    assert result.parsed_count == 2
    first, last = result.transactions
    assert first.date == "2023-03-02"
    # Undated rows sort last and stay flagged
    assert last.date is None
    assert last.needs_review
    assert result.errors == [{"row": 4, "error": "Invalid date: '13/45'"}]


def test_out_of_range_amount_is_reported():
    text = _dedent(
        """
        JPMorgan Chase Bank, N.A.
        DEPOSITS AND ADDITIONS
        01/05 Garbled column merge 250,000.00
        01/06 Customer payment 10.00
        Total Deposits and Additions
        """
    )
    result = parse_chase_statement_text(text, year=2024)

    assert result.parsed_count == 1
    assert result.errors[0]["row"] == 3
    assert result.errors[0]["error"].startswith("Amount out of range")


def test_unrecognized_statement_uses_generic_lines():
    text = _dedent(
        """
        First Community Credit Union
        01/05 Coffee Shop -4.50
        01/06 Client payment 200.00
        """
    )
    result = parse_chase_statement_text(text, year=2023)

    assert result.success
    assert result.detected_bank == "generic"
    assert result.requires_mapping is True
    assert [(tx.date, tx.amount) for tx in result.transactions] == [
        ("2023-01-05", Decimal("-4.50")),
        ("2023-01-06", Decimal("200.00")),
    ]


def test_no_transactions_is_an_error():
    result = parse_chase_statement_text("JPMorgan Chase Bank\nNothing here", year=2024)
    assert not result.success
    assert result.error == "No transactions found in PDF statement"


def test_pdf_bytes_go_through_text_extraction(monkeypatch: pytest.MonkeyPatch):
    seen: list[bytes] = []

    def fake_extract(data: bytes) -> str:
        seen.append(data)
        return STATEMENT_TEXT

    monkeypatch.setattr(normalizers_mod, "extract_pdf_text", fake_extract)
    result = normalize_statement(b"%PDF-1.7 fake", file_name="statement.pdf")

    assert seen == [b"%PDF-1.7 fake"]
    assert result.detected_bank == "chase"
    assert result.parsed_count == 8


def test_scanned_pdf_without_text(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(normalizers_mod, "extract_pdf_text", lambda data: "  \n")
    result = normalize_statement(b"%PDF-1.4", file_name="scan.pdf")

    assert not result.success
    assert "scanned statements are not supported" in (result.error or "")
