"""Duplicate detection for statement imports.

Two transactions of the same company are duplicates when they share a date,
have the same amount to the cent, and their descriptions are equal or one
contains the other (case-insensitive, whitespace collapsed). Rows without a
date or description are never treated as duplicates; they are kept and left
for review.

Public surface:
- ``DuplicateKey``: the normalized ``(company, date, cents, description)``.
- ``is_duplicate``: pairwise match on two keys.
- ``partition_duplicates``: split a batch into survivors and duplicates,
  checking stored rows and earlier rows of the same batch.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from sqlalchemy.orm import Session

from .currency import to_cents
from .models import Transaction
from .persistence import TransactionStore


@dataclass(frozen=True, slots=True)
class DuplicateKey:
    company_id: str | None
    date: str | None
    cents: int
    description: str

    @classmethod
    def of(cls, tx: Transaction, *, company_id: str | None = None) -> DuplicateKey:
        return cls(
            company_id=company_id if company_id is not None else tx.company_id,
            date=tx.date,
            cents=to_cents(tx.amount),
            description=" ".join((tx.description or "").lower().split()),
        )

    @property
    def comparable(self) -> bool:
        return bool(self.date) and bool(self.description)


def _descriptions_match(a: str, b: str) -> bool:
    return a == b or a in b or b in a


def is_duplicate(a: DuplicateKey, b: DuplicateKey) -> bool:
    """Same company, date and cents, with overlapping descriptions."""

    if not (a.comparable and b.comparable):
        return False
    return (
        a.company_id == b.company_id
        and a.date == b.date
        and a.cents == b.cents
        and _descriptions_match(a.description, b.description)
    )


@dataclass(slots=True)
class DuplicatePartition:
    unique: list[Transaction]
    duplicates: list[Transaction]


def partition_duplicates(
    transactions: Sequence[Transaction],
    *,
    company_id: str | None,
    existing: Iterable[Transaction] = (),
) -> DuplicatePartition:
    """Separate ``transactions`` into unique rows and duplicates.

    A row is a duplicate when it matches any of ``existing`` or any row kept
    earlier in ``transactions``. Input order is preserved in both lists.
    """

    by_date: dict[str | None, list[DuplicateKey]] = defaultdict(list)
    for tx in existing:
        key = DuplicateKey.of(tx)
        if key.comparable:
            by_date[key.date].append(key)

    unique: list[Transaction] = []
    dups: list[Transaction] = []
    for tx in transactions:
        key = DuplicateKey.of(tx, company_id=company_id)
        if key.comparable and any(is_duplicate(key, seen) for seen in by_date[key.date]):
            dups.append(tx)
            continue
        unique.append(tx)
        if key.comparable:
            by_date[key.date].append(key)
    return DuplicatePartition(unique=unique, duplicates=dups)


def find_duplicates(
    store: TransactionStore,
    transactions: Sequence[Transaction],
    *,
    company_id: str | None,
    session: Session | None = None,
) -> DuplicatePartition:
    """Partition ``transactions`` against stored rows of ``company_id``.

    Only stored rows on the batch's dates are loaded.
    """

    existing = store.find_by_dates(
        (tx.date for tx in transactions if tx.date),
        company_id=company_id,
        session=session,
    )
    return partition_duplicates(transactions, company_id=company_id, existing=existing)


__all__ = [
    "DuplicateKey",
    "DuplicatePartition",
    "find_duplicates",
    "is_duplicate",
    "partition_duplicates",
]
