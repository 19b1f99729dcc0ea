"""Split one stored transaction into category-tagged parts.

A transaction is either whole or split. Splitting validates the parts in
positive magnitudes, restores the original's sign once per part, and stores
the parts with a back-reference to the original. The original row keeps its
amount and is flagged ``is_split`` so primary listings hide it while it stays
available for audit. Unsplitting deletes the parts and clears the flag, which
makes the original numerically identical to its pre-split state.

All amount math goes through :mod:`bookkeeping.currency` in integer cents.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any

from .categories import Category, parse_category
from .currency import format_currency, from_cents, to_cents
from .errors import BookkeepingError, InvalidSplit
from .logging_setup import get_logger
from .models import ClassificationSource, Transaction, TransactionType
from .persistence import TransactionStore

_logger = get_logger("bookkeeping.splits")


@dataclass(frozen=True, slots=True)
class SplitPart:
    """One requested portion of a split (``amount`` is a positive magnitude)."""

    amount: Any
    category: Any
    subcategory: str | None = None
    description: str | None = None
    vendor: str | None = None


@dataclass(frozen=True, slots=True)
class SplitValidation:
    original_amount: Decimal
    total_split_amount: Decimal
    remainder: Decimal


@dataclass(frozen=True, slots=True)
class SplitResult:
    original: Transaction
    parts: list[Transaction]
    remainder: Decimal


@dataclass(frozen=True, slots=True)
class SplitRequest:
    transaction_id: str
    parts: Sequence[SplitPart | Mapping[str, Any]]


@dataclass(frozen=True, slots=True)
class BulkSplitItem:
    transaction_id: str
    success: bool
    result: SplitResult | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class BulkSplitResult:
    items: list[BulkSplitItem] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for it in self.items if it.success)

    @property
    def error_count(self) -> int:
        return sum(1 for it in self.items if not it.success)

    @property
    def success(self) -> bool:
        return self.error_count == 0

    @property
    def message(self) -> str:
        return f"Completed {self.success_count} of {len(self.items)} splits"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _coerce_part(raw: SplitPart | Mapping[str, Any]) -> SplitPart:
    if isinstance(raw, SplitPart):
        return raw
    if isinstance(raw, Mapping):
        return SplitPart(
            amount=raw.get("amount"),
            category=raw.get("category"),
            subcategory=raw.get("subcategory"),
            description=raw.get("description"),
            vendor=raw.get("vendor") or raw.get("vendorName"),
        )
    raise InvalidSplit(f"Unsupported split part: {raw!r}")


def _positive_cents(value: Any) -> int | None:
    """Cents for a positive finite number; ``None`` for anything else.

    Strings and booleans are rejected: callers parse user text first.
    """

    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, Decimal) and not value.is_finite():
        return None
    if value <= 0:
        return None
    cents = to_cents(value)
    return cents if cents > 0 else None


def _part_category(part: SplitPart, n: int) -> Category:
    raw = part.category
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise InvalidSplit(f"Split part {n}: Category is required")
    cat = parse_category(raw)
    if cat is None:
        raise InvalidSplit(f"Split part {n}: Unknown category {raw!r}")
    return cat


def validate_split_parts(
    original: Transaction | None,
    parts: Sequence[SplitPart | Mapping[str, Any]] | None,
) -> SplitValidation:
    """Check ``parts`` against ``original`` and report the remainder.

    Part amounts are quantized to the cent before they are summed, so the
    comparison with the original is exact. A positive remainder is legal and
    returned to the caller.

    Raises
    ------
    InvalidSplit
        Missing original, no parts, a non-positive part amount, a part
        without a category, or parts totalling more than the original.
    """

    if original is None:
        raise InvalidSplit("Original transaction is required")
    if not parts:
        raise InvalidSplit("At least one split part is required")

    original_cents = abs(to_cents(original.amount))
    total_cents = 0
    for n, raw in enumerate(parts, start=1):
        part = _coerce_part(raw)
        cents = _positive_cents(part.amount)
        if cents is None:
            raise InvalidSplit(f"Split part {n}: Amount must be a positive number")
        _part_category(part, n)
        total_cents += cents

    if total_cents > original_cents:
        raise InvalidSplit(
            f"Total split amount ({format_currency(from_cents(total_cents))}) exceeds "
            f"original amount ({format_currency(from_cents(original_cents))})"
        )

    return SplitValidation(
        original_amount=from_cents(original_cents),
        total_split_amount=from_cents(total_cents),
        remainder=from_cents(original_cents - total_cents),
    )


# ---------------------------------------------------------------------------
# Operations over the store
# ---------------------------------------------------------------------------


def _signed(magnitude: Decimal, original: Transaction) -> Decimal:
    if original.type is TransactionType.EXPENSE:
        return -magnitude
    if original.type is TransactionType.INCOME:
        return magnitude
    return -magnitude if original.amount < 0 else magnitude


def _build_part(original: Transaction, part: SplitPart, index: int) -> Transaction:
    category = _part_category(part, index)
    magnitude = from_cents(to_cents(part.amount))
    return Transaction(
        id=None,
        date=original.date,
        description=(part.description or "").strip() or original.description,
        amount=_signed(magnitude, original),
        type=original.type,
        category=category,
        subcategory=part.subcategory,
        confidence=1.0,
        needs_review=False,
        payee=original.payee,
        source_upload_id=original.source_upload_id,
        split_parent_id=original.id,
        check_number=original.check_number,
        payment_method=original.payment_method,
        bank_type=original.bank_type,
        section=original.section,
        vendor=part.vendor or original.vendor,
        reasoning=f"Split from: {original.description}",
        classification_source=ClassificationSource.SPLIT,
        split_index=index,
        original_amount=abs(original.amount),
        company_id=original.company_id,
    )


def split_transaction(
    store: TransactionStore,
    transaction_id: str,
    parts: Sequence[SplitPart | Mapping[str, Any]],
) -> SplitResult:
    """Split a stored transaction into ``parts`` in one database transaction.

    Raises
    ------
    TransactionNotFound
        No transaction has ``transaction_id``.
    InvalidSplit
        The transaction is already split, is itself a split part, or the
        parts fail :func:`validate_split_parts`.
    """

    with store.transaction() as s:
        original = store.require(transaction_id, session=s)
        if original.is_split:
            raise InvalidSplit("Transaction has already been split. Unsplit first to modify.")
        if original.split_parent_id is not None:
            raise InvalidSplit("A split part cannot be split again")

        validation = validate_split_parts(original, parts)
        coerced = [_coerce_part(p) for p in parts]
        created = store.create_many(
            (_build_part(original, p, i) for i, p in enumerate(coerced, start=1)),
            session=s,
        )
        updated = store.update(
            replace(original, is_split=True, original_amount=abs(original.amount)),
            session=s,
        )

    _logger.info(
        "splits:split id=%s parts=%d total=%s remainder=%s",
        transaction_id,
        len(created),
        validation.total_split_amount,
        validation.remainder,
    )
    return SplitResult(original=updated, parts=created, remainder=validation.remainder)


def unsplit_transaction(store: TransactionStore, transaction_id: str) -> Transaction:
    """Delete the parts of a split transaction and return the restored original.

    Unsplitting a whole transaction returns it unchanged.
    """

    with store.transaction() as s:
        tx = store.require(transaction_id, session=s)
        if not tx.is_split:
            return tx
        removed = store.delete_split_parts(tx.id or transaction_id, session=s)
        restored = store.update(replace(tx, is_split=False, original_amount=None), session=s)

    _logger.info("splits:unsplit id=%s parts_removed=%d", transaction_id, removed)
    return restored


def _coerce_request(raw: SplitRequest | Mapping[str, Any]) -> SplitRequest:
    if isinstance(raw, SplitRequest):
        return raw
    tx_id = raw.get("transaction_id") or raw.get("transactionId")
    parts = raw.get("parts") or raw.get("splitParts") or []
    return SplitRequest(transaction_id=str(tx_id or ""), parts=list(parts))


def bulk_split_transactions(
    store: TransactionStore,
    requests: Iterable[SplitRequest | Mapping[str, Any]],
) -> BulkSplitResult:
    """Apply :func:`split_transaction` to each request, collecting outcomes.

    A request that fails validation or names an unknown transaction is
    reported in its item and does not stop the others. Database errors
    propagate.
    """

    reqs = [_coerce_request(r) for r in requests]
    if not reqs:
        raise InvalidSplit("No splits provided")

    items: list[BulkSplitItem] = []
    for req in reqs:
        try:
            result = split_transaction(store, req.transaction_id, req.parts)
        except BookkeepingError as e:
            items.append(BulkSplitItem(req.transaction_id, success=False, error=str(e)))
            continue
        items.append(BulkSplitItem(req.transaction_id, success=True, result=result))

    out = BulkSplitResult(items=items)
    _logger.info(
        "splits:bulk_done total=%d succeeded=%d failed=%d",
        len(items),
        out.success_count,
        out.error_count,
    )
    return out


def get_split_parts(store: TransactionStore, transaction_id: str) -> list[Transaction]:
    """Parts of ``transaction_id`` ordered by ``split_index``."""

    parts = store.list(split_parent_id=transaction_id, include_split_originals=True)
    return sorted(parts, key=lambda t: t.split_index or 0)


__all__ = [
    "BulkSplitItem",
    "BulkSplitResult",
    "SplitPart",
    "SplitRequest",
    "SplitResult",
    "SplitValidation",
    "bulk_split_transactions",
    "get_split_parts",
    "split_transaction",
    "unsplit_transaction",
    "validate_split_parts",
]
