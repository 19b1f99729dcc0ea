from decimal import Decimal
from pathlib import Path

import pytest

from bookkeeping.categories import Category
from bookkeeping.errors import InvalidSplit, TransactionNotFound
from bookkeeping.models import ClassificationSource, Transaction, TransactionType
from bookkeeping.splits import (
    SplitPart,
    SplitRequest,
    bulk_split_transactions,
    get_split_parts,
    split_transaction,
    unsplit_transaction,
    validate_split_parts,
)
from tests.helpers.db import make_store


def _expense(amount: str = "-100.00", **kw) -> Transaction:
    kw.setdefault("id", None)
    return Transaction(
        date="2024-01-15",
        description="COSTCO WHOLESALE #123",
        amount=Decimal(amount),
        type=TransactionType.EXPENSE,
        category=Category.SUPPLIES,
        confidence=0.8,
        needs_review=False,
        payee="COSTCO",
        **kw,
    )


@pytest.fixture
def store(tmp_path: Path):
    return make_store(tmp_path / "splits.sqlite")


def test_split_creates_signed_parts_and_hides_original(store):
    original = store.create(_expense())

    result = split_transaction(
        store,
        original.id,
        [
            {"amount": 60, "category": "OFFICE_EXPENSES", "description": "Printer paper"},
            SplitPart(amount=Decimal("40"), category="Meals and Entertainment", vendor="Costco Cafe"),
        ],
    )

    assert result.remainder == Decimal("0.00")
    assert result.original.is_split
    assert result.original.amount == Decimal("-100.00")
    assert [p.amount for p in result.parts] == [Decimal("-60.00"), Decimal("-40.00")]

    paper, lunch = result.parts
    assert paper.description == "Printer paper"
    assert paper.category is Category.OFFICE_EXPENSES
    assert lunch.description == "COSTCO WHOLESALE #123"
    assert lunch.vendor == "Costco Cafe"
    for part in result.parts:
        assert part.split_parent_id == original.id
        assert part.type is TransactionType.EXPENSE
        assert part.confidence == 1.0
        assert part.needs_review is False
        assert part.classification_source is ClassificationSource.SPLIT
        assert part.reasoning == "Split from: COSTCO WHOLESALE #123"

    listed = store.list()
    assert [tx.id for tx in listed] == [paper.id, lunch.id]
    assert original.id in {tx.id for tx in store.list(include_split_originals=True)}
    assert [p.id for p in get_split_parts(store, original.id)] == [paper.id, lunch.id]


def test_partial_split_reports_remainder(store):
    original = store.create(_expense())
    result = split_transaction(store, original.id, [{"amount": 25.5, "category": "SUPPLIES"}])
    assert result.remainder == Decimal("74.50")


def test_income_parts_stay_positive(store):
    deposit = store.create(
        Transaction(
            id=None,
            date="2024-01-20",
            description="DEPOSIT ACME AND GLOBEX",
            amount=Decimal("500.00"),
            type=TransactionType.INCOME,
        )
    )
    result = split_transaction(
        store,
        deposit.id,
        [{"amount": 300, "category": "GROSS_RECEIPTS"}, {"amount": 200, "category": "OTHER_INCOME"}],
    )
    assert [p.amount for p in result.parts] == [Decimal("300.00"), Decimal("200.00")]


def test_overrun_is_rejected_and_nothing_is_written(store):
    original = store.create(_expense())

    with pytest.raises(InvalidSplit, match=r"exceeds original amount \(\$100\.00\)"):
        split_transaction(
            store,
            original.id,
            [{"amount": 60, "category": "SUPPLIES"}, {"amount": 50, "category": "MEALS"}],
        )

    assert store.require(original.id).is_split is False
    assert get_split_parts(store, original.id) == []


def test_float_noise_does_not_trip_the_total():
    original = _expense("-0.30", id="x")
    validation = validate_split_parts(
        original, [{"amount": 0.1, "category": "MEALS"}, {"amount": 0.2, "category": "MEALS"}]
    )
    assert validation.remainder == Decimal("0.00")


@pytest.mark.parametrize(
    ("parts", "message"),
    [
        ([], "At least one split part is required"),
        ([{"amount": 0, "category": "MEALS"}], "Split part 1: Amount must be a positive number"),
        ([{"amount": -5, "category": "MEALS"}], "Split part 1: Amount must be a positive number"),
        ([{"amount": "10", "category": "MEALS"}], "Split part 1: Amount must be a positive number"),
        ([{"amount": float("nan"), "category": "MEALS"}], "Split part 1: Amount must be a positive number"),
        (
            [{"amount": 10, "category": "MEALS"}, {"amount": 5, "category": " "}],
            "Split part 2: Category is required",
        ),
        ([{"amount": 10, "category": "Groceries"}], "Split part 1: Unknown category 'Groceries'"),
    ],
)
def test_validation_messages(parts, message):
    with pytest.raises(InvalidSplit) as exc:
        validate_split_parts(_expense(id="x"), parts)
    assert str(exc.value) == message


def test_missing_original_is_rejected():
    with pytest.raises(InvalidSplit, match="Original transaction is required"):
        validate_split_parts(None, [{"amount": 1, "category": "MEALS"}])


def test_split_twice_and_split_of_part_are_rejected(store):
    original = store.create(_expense())
    result = split_transaction(store, original.id, [{"amount": 100, "category": "SUPPLIES"}])

    with pytest.raises(InvalidSplit, match="already been split"):
        split_transaction(store, original.id, [{"amount": 10, "category": "SUPPLIES"}])
    with pytest.raises(InvalidSplit, match="cannot be split again"):
        split_transaction(store, result.parts[0].id, [{"amount": 10, "category": "SUPPLIES"}])
    with pytest.raises(TransactionNotFound):
        split_transaction(store, "does-not-exist", [{"amount": 10, "category": "SUPPLIES"}])


def test_unsplit_restores_the_original_exactly(store):
    original = store.create(_expense("-123.45"))
    split_transaction(
        store,
        original.id,
        [{"amount": 23.45, "category": "MEALS"}, {"amount": 100, "category": "SUPPLIES"}],
    )

    restored = unsplit_transaction(store, original.id)

    assert restored == original
    assert store.require(original.id) == original
    assert get_split_parts(store, original.id) == []
    assert [tx.id for tx in store.list()] == [original.id]
    # Unsplitting a whole transaction is a no-op
    assert unsplit_transaction(store, original.id) == original


def test_bulk_split_reports_each_item(store):
    a = store.create(_expense())
    b = store.create(_expense("-50.00"))

    out = bulk_split_transactions(
        store,
        [
            SplitRequest(a.id, [{"amount": 100, "category": "SUPPLIES"}]),
            {"transactionId": b.id, "splitParts": [{"amount": 80, "category": "SUPPLIES"}]},
            {"transaction_id": "missing", "parts": [{"amount": 1, "category": "SUPPLIES"}]},
        ],
    )

    assert out.success_count == 1
    assert out.error_count == 2
    assert not out.success
    assert out.message == "Completed 1 of 3 splits"
    ok, overrun, missing = out.items
    assert ok.result is not None and ok.result.remainder == Decimal("0.00")
    assert "exceeds original amount" in (overrun.error or "")
    assert missing.error == "Transaction not found: missing"
    assert store.require(b.id).is_split is False

    with pytest.raises(InvalidSplit, match="No splits provided"):
        bulk_split_transactions(store, [])
