# ruff: noqa: E501
import textwrap
from decimal import Decimal

import pytest

from bookkeeping.errors import InvalidMapping
from bookkeeping.ingest.utils import clean_amount, month_day_to_iso, parse_date
from bookkeeping.models import PaymentMethod, TransactionType
from bookkeeping.normalizers import get_supported_banks, normalize_statement, summarize_transactions


def _dedent(s: str) -> str:
    return textwrap.dedent(s).lstrip("\n").rstrip()


CHASE_CSV = _dedent(
    """
    Details,Posting Date,Description,Amount,Type,Balance,Check or Slip #
    CREDIT,01/05/2024,CLIENT PAYMENT RECEIVED ACME,1500.00,ACH_CREDIT,11500.00,
    DEBIT,01/06/2024,STAPLES 00123 OFFICE,-45.20,DEBIT_CARD,11454.80,
    CHECK,01/08/2024,CHECK 1234,-400.00,CHECK_PAID,11054.80,1234
    DSLIP,01/09/2024,REMOTE ONLINE DEPOSIT,250.00,CHECK_DEPOSIT,11304.80,1001
    """
)


def test_chase_csv_is_detected_without_mapping():
    result = normalize_statement(CHASE_CSV.encode("utf-8"), file_name="activity.csv")

    assert result.success
    assert result.detected_bank == "chase"
    assert result.requires_mapping is False
    assert result.parsed_count == 4
    assert result.errors == []

    income, card, check, deposit = result.transactions
    assert income.type is TransactionType.INCOME
    assert income.amount == Decimal("1500.00")
    assert income.date == "2024-01-05"

    assert card.type is TransactionType.EXPENSE
    assert card.amount == Decimal("-45.20")
    assert card.payment_method is PaymentMethod.DEBIT_CARD

    # Checks carry a number, never a payee
    assert check.check_number == "1234"
    assert check.payee is None
    assert check.payment_method is PaymentMethod.CHECK

    # Deposit slips are not checks even when the slip column is filled
    assert deposit.check_number is None
    assert deposit.payment_method is PaymentMethod.CHECK_DEPOSIT
    assert deposit.type is TransactionType.INCOME


def test_card_export_with_inverted_sign():
    csv_text = _dedent(
        """
        Trans. Date,Post Date,Description,Amount,Category
        02/01/2024,02/02/2024,ADOBE CREATIVE CLOUD,54.99,Services
        02/03/2024,02/03/2024,INTERNET PAYMENT - THANK YOU,-500.00,Payments and Credits
        """
    )
    result = normalize_statement(csv_text)

    assert result.detected_bank == "discover"
    purchase, payment = result.transactions
    assert purchase.amount == Decimal("-54.99")
    assert purchase.type is TransactionType.EXPENSE
    assert payment.amount == Decimal("500.00")
    assert payment.type is TransactionType.INCOME


def test_debit_credit_columns():
    csv_text = _dedent(
        """
        Transaction Date,Posted Date,Card No.,Description,Category,Debit,Credit
        2024-03-01,2024-03-02,1234,HOME DEPOT,Merchandise,120.50,
        2024-03-04,2024-03-05,1234,REFUND HOME DEPOT,Merchandise,,20.00
        """
    )
    result = normalize_statement(csv_text)

    assert result.detected_bank == "capital_one"
    debit, credit = result.transactions
    assert debit.amount == Decimal("-120.50")
    assert debit.type is TransactionType.EXPENSE
    assert credit.amount == Decimal("20.00")
    assert credit.type is TransactionType.INCOME


def test_unknown_headers_fall_back_to_generic_mapping():
    csv_text = _dedent(
        """
        Booked On,Narrative,Value
        2024-04-01,Coffee with client,-6.75
        2024-04-02,Invoice 1001 settled,900.00
        """
    )
    result = normalize_statement(csv_text)

    assert result.success
    assert result.requires_mapping is True
    assert result.detected_bank == "generic"
    assert [tx.amount for tx in result.transactions] == [Decimal("-6.75"), Decimal("900.00")]


def test_explicit_column_mapping_and_bad_mapping():
    csv_text = _dedent(
        """
        When,What,How Much,Kind
        05/01/2024,Consulting,300.00,income
        05/02/2024,Refund issued,300.00,expense
        """
    )
    mapping = {"date": "When", "description": "What", "amount": "How Much", "type": "Kind"}
    result = normalize_statement(csv_text, column_mapping=mapping)

    assert result.requires_mapping is False
    assert result.detected_bank == "custom"
    first, second = result.transactions
    assert first.type is TransactionType.INCOME
    # An explicit type wins over the sign in the file
    assert second.type is TransactionType.EXPENSE
    assert second.amount == Decimal("-300.00")

    with pytest.raises(InvalidMapping) as exc:
        normalize_statement(csv_text, column_mapping={"date": "When", "amount": "Missing"})
    assert "Description column is required" in exc.value.errors


def test_bad_rows_are_flagged_not_dropped():
    csv_text = _dedent(
        """
        Details,Posting Date,Description,Amount,Type,Balance,Check or Slip #
        DEBIT,0105/2024,NO SEPARATOR DATE,-10.00,DEBIT_CARD,,
        DEBIT,01/06/2024,NO AMOUNT,abc,DEBIT_CARD,,
        """
    )
    result = normalize_statement(csv_text)

    assert result.parsed_count == 1
    flagged = result.transactions[0]
    assert flagged.date is None
    assert flagged.needs_review
    assert flagged.parse_issue == "Invalid date: '0105/2024'"
    assert {"row": 2, "error": "Invalid date: '0105/2024'"} in result.errors
    assert {"row": 3, "error": "Invalid amount: 'abc'"} in result.errors


def test_oversized_amount_is_a_row_error():
    csv_text = _dedent(
        f"""
        Details,Posting Date,Description,Amount,Type,Balance,Check or Slip #
        DEBIT,01/06/2024,GARBLED EXPORT,-{"9" * 30},DEBIT_CARD,,
        DEBIT,01/07/2024,STAPLES 00123 OFFICE,-45.20,DEBIT_CARD,,
        """
    )
    result = normalize_statement(csv_text)

    assert result.success
    assert [tx.amount for tx in result.transactions] == [Decimal("-45.20")]
    assert result.errors[0]["row"] == 2
    assert result.errors[0]["error"].startswith("Invalid amount")


def test_empty_csv_reports_error():
    result = normalize_statement("Date,Description,Amount\n")
    assert not result.success
    assert result.error == "CSV file is empty or has no data rows"


def test_unknown_bank_format_raises():
    with pytest.raises(ValueError):
        normalize_statement(CHASE_CSV, "not_a_bank")


def test_summarize_transactions_totals():
    result = normalize_statement(CHASE_CSV)
    totals = summarize_transactions(result.transactions)

    assert totals["count"] == 4
    assert totals["totalIncome"] == Decimal("1750.00")
    assert totals["totalExpenses"] == Decimal("445.20")
    assert totals["net"] == Decimal("1304.80")
    assert totals["dateRangeStart"] == "2024-01-05"
    assert totals["dateRangeEnd"] == "2024-01-09"


def test_supported_banks_include_pdf_parser():
    keys = [b["key"] for b in get_supported_banks()]
    assert "chase" in keys and "amex" in keys
    assert keys[-1] == "chase_pdf"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("$1,234.56", Decimal("1234.56")),
        ("(45.00)", Decimal("-45.00")),
        ("10.00 DR", Decimal("-10.00")),
        ("", None),
        ("n/a", None),
        ("1" * 27, None),
        ("$" + "9" * 30, None),
    ],
)
def test_clean_amount(raw, expected):
    assert clean_amount(raw) == expected


def test_date_tokens_fail_soft():
    assert parse_date("01/05/2024 10:31 AM") == "2024-01-05"
    assert parse_date("2024-13-40") is None
    assert month_day_to_iso("01/31", 2024) == "2024-01-31"
    assert month_day_to_iso("0131", 2024) is None
    assert month_day_to_iso("02/30", 2024) is None
    assert month_day_to_iso("/12", 2024) is None
