from decimal import Decimal
from pathlib import Path

from bookkeeping.duplicates import DuplicateKey, find_duplicates, is_duplicate, partition_duplicates
from bookkeeping.models import Transaction, TransactionType
from tests.helpers.db import make_store


def _tx(description: str, amount: str = "-12.34", date: str | None = "2024-03-01", **kw) -> Transaction:
    return Transaction(
        id=kw.pop("id", None),
        date=date,
        description=description,
        amount=Decimal(amount),
        type=TransactionType.EXPENSE,
        **kw,
    )


def test_key_normalizes_description_and_amount():
    key = DuplicateKey.of(_tx("  Shell   OIL 123 ", "-12.3401"), company_id="c1")
    assert key == DuplicateKey(company_id="c1", date="2024-03-01", cents=-1234, description="shell oil 123")


def test_contained_description_matches():
    a = DuplicateKey.of(_tx("SHELL OIL 12345 PLANTATION FL"))
    b = DuplicateKey.of(_tx("shell oil 12345"))
    assert is_duplicate(a, b)
    assert is_duplicate(b, a)


def test_different_date_amount_or_company_does_not_match():
    base = DuplicateKey.of(_tx("SHELL OIL"), company_id="c1")
    assert not is_duplicate(base, DuplicateKey.of(_tx("SHELL OIL", date="2024-03-02"), company_id="c1"))
    assert not is_duplicate(base, DuplicateKey.of(_tx("SHELL OIL", "-12.35"), company_id="c1"))
    assert not is_duplicate(base, DuplicateKey.of(_tx("SHELL OIL"), company_id="c2"))
    assert not is_duplicate(base, DuplicateKey.of(_tx("EXXON"), company_id="c1"))


def test_undated_or_blank_rows_are_never_duplicates():
    txs = [_tx("SHELL OIL", date=None), _tx("SHELL OIL", date=None), _tx(""), _tx("")]
    out = partition_duplicates(txs, company_id=None)
    assert out.duplicates == []
    assert len(out.unique) == 4


def test_repeats_within_one_file_keep_the_first():
    first = _tx("COFFEE SHOP", row_number=2)
    again = _tx("COFFEE SHOP", row_number=3)
    other = _tx("COFFEE SHOP", "-5.00", row_number=4)

    out = partition_duplicates([first, again, other], company_id="c1")

    assert out.unique == [first, other]
    assert out.duplicates == [again]


def test_find_duplicates_checks_stored_rows_of_the_same_company(tmp_path: Path):
    store = make_store(tmp_path / "dups.sqlite")
    store.create(_tx("AMAZON MKTPLACE PMTS", "-20.00", company_id="c1"))
    store.create(_tx("AMAZON MKTPLACE PMTS", "-30.00", company_id="c2"))

    incoming = [
        _tx("AMAZON MKTPLACE", "-20.00"),
        _tx("AMAZON MKTPLACE", "-30.00"),
        _tx("AMAZON MKTPLACE", "-20.00", date="2024-03-05"),
    ]
    out = find_duplicates(store, incoming, company_id="c1")

    assert out.duplicates == [incoming[0]]
    assert out.unique == incoming[1:]
