# ruff: noqa: I001
"""Persistence integration for bookkeeping.

:class:`TransactionStore` maps the immutable domain records in
:mod:`bookkeeping.models` to the ORM rows owned by ``libs/db``
(``bk_transactions``, ``bk_classification_rules``, ``bk_import_batches``,
``bk_ai_usage``).

Every method takes an optional ``session``. Without one the call runs in its
own ``session_scope`` (committed on success, rolled back on error); with one
it joins the caller's transaction, which is how multi-step operations such as
splitting and confirming an import stay all-or-nothing::

    with store.transaction() as s:
        store.update(original, session=s)
        store.create_many(parts, session=s)

Database errors propagate unchanged; nothing here retries.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from db.client import session_scope
from db.models.bookkeeping import (
    BkAiUsage,
    BkClassificationRule,
    BkImportBatch,
    BkTransaction,
)

from .categories import parse_category
from .errors import TransactionNotFound
from .logging_setup import get_logger
from .models import (
    ClassificationRule,
    ClassificationSource,
    ImportBatch,
    ImportStatus,
    PaymentMethod,
    Transaction,
    TransactionType,
)

_logger = get_logger("bookkeeping.persistence")


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Row <-> domain mapping
# ---------------------------------------------------------------------------


def _to_date(raw: str | None) -> date | None:
    if not raw:
        return None
    return date.fromisoformat(raw)


E = TypeVar("E")


def _enum_or_none(enum_cls: type[E], raw: str | None) -> E | None:
    if raw is None:
        return None
    try:
        return enum_cls(raw)  # type: ignore[call-arg]
    except ValueError:
        return None


def _apply_to_row(row: BkTransaction, tx: Transaction) -> None:
    row.company_id = tx.company_id
    row.date = _to_date(tx.date)
    row.description = tx.description
    row.amount = tx.amount
    row.type = tx.type.value
    row.category = tx.category.value if tx.category else None
    row.subcategory = tx.subcategory
    row.confidence = tx.confidence
    row.needs_review = tx.needs_review
    row.classification_source = (
        tx.classification_source.value if tx.classification_source else None
    )
    row.payee = tx.payee
    row.vendor = tx.vendor
    row.reasoning = tx.reasoning
    row.check_number = tx.check_number
    row.payment_method = tx.payment_method.value if tx.payment_method else None
    row.bank_type = tx.bank_type
    row.section = tx.section
    row.parse_issue = tx.parse_issue
    row.source_upload_id = tx.source_upload_id
    row.split_parent_id = tx.split_parent_id
    row.is_split = tx.is_split
    row.split_index = tx.split_index
    row.original_amount = tx.original_amount


def _from_row(row: BkTransaction) -> Transaction:
    return Transaction(
        id=row.id,
        date=row.date.isoformat() if row.date else None,
        description=row.description,
        amount=Decimal(row.amount),
        type=TransactionType(row.type),
        category=parse_category(row.category),
        subcategory=row.subcategory,
        confidence=row.confidence,
        needs_review=row.needs_review,
        payee=row.payee,
        source_upload_id=row.source_upload_id,
        split_parent_id=row.split_parent_id,
        check_number=row.check_number,
        payment_method=_enum_or_none(PaymentMethod, row.payment_method),
        bank_type=row.bank_type,
        section=row.section,
        parse_issue=row.parse_issue,
        vendor=row.vendor,
        reasoning=row.reasoning,
        classification_source=_enum_or_none(ClassificationSource, row.classification_source),
        is_split=row.is_split,
        split_index=row.split_index,
        original_amount=Decimal(row.original_amount) if row.original_amount is not None else None,
        company_id=row.company_id,
    )


def _rule_from_row(row: BkClassificationRule) -> ClassificationRule:
    return ClassificationRule(
        id=row.id,
        keywords=tuple(row.keywords or ()),
        category=row.category,
        priority=row.priority,
        is_active=row.is_active,
        created_at=row.created_at,
        subcategory=row.subcategory,
    )


def _batch_to_dict(row: BkImportBatch) -> dict[str, Any]:
    return {
        "id": row.id,
        "companyId": row.company_id,
        "fileName": row.file_name,
        "bankFormat": row.bank_format,
        "bankName": row.bank_name,
        "status": row.status,
        "parsedCount": row.parsed_count,
        "importedCount": row.imported_count,
        "duplicateCount": row.duplicate_count,
        "dateRangeStart": row.date_range_start.isoformat() if row.date_range_start else None,
        "dateRangeEnd": row.date_range_end.isoformat() if row.date_range_end else None,
        "errors": list(row.errors or []),
        "errorCount": len(row.errors or []),
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TransactionStore:
    """Transactions, rules, import batches and usage records in one database."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Open a unit of work that the ``session=`` arguments can join."""

        with session_scope(database_url=self._database_url) as session:
            yield session

    @contextmanager
    def _scope(self, session: Session | None) -> Iterator[Session]:
        if session is not None:
            yield session
            return
        with session_scope(database_url=self._database_url) as s:
            yield s

    # ---- Transactions ------------------------------------------------------

    def create(self, tx: Transaction, *, session: Session | None = None) -> Transaction:
        """Insert ``tx`` (assigning an id when it has none) and return it."""

        stored = tx if tx.id else replace(tx, id=new_id())
        with self._scope(session) as s:
            row = BkTransaction(id=stored.id)
            _apply_to_row(row, stored)
            s.add(row)
            s.flush()
        return stored

    def create_many(
        self,
        transactions: Iterable[Transaction],
        *,
        session: Session | None = None,
    ) -> list[Transaction]:
        out: list[Transaction] = []
        with self._scope(session) as s:
            for tx in transactions:
                out.append(self.create(tx, session=s))
        return out

    def get(self, tx_id: str, *, session: Session | None = None) -> Transaction | None:
        with self._scope(session) as s:
            row = s.get(BkTransaction, tx_id)
            return _from_row(row) if row is not None else None

    def require(self, tx_id: str, *, session: Session | None = None) -> Transaction:
        tx = self.get(tx_id, session=session)
        if tx is None:
            raise TransactionNotFound(f"Transaction not found: {tx_id}")
        return tx

    def list(
        self,
        *,
        company_id: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        source_upload_id: str | None = None,
        split_parent_id: str | None = None,
        include_split_originals: bool = False,
        session: Session | None = None,
    ) -> list[Transaction]:
        """List transactions ordered by date then id.

        Split originals are hidden unless ``include_split_originals`` is set;
        their parts are listed in their place.
        """

        stmt = select(BkTransaction)
        if company_id is not None:
            stmt = stmt.where(BkTransaction.company_id == company_id)
        if date_from:
            stmt = stmt.where(BkTransaction.date >= _to_date(date_from))
        if date_to:
            stmt = stmt.where(BkTransaction.date <= _to_date(date_to))
        if source_upload_id is not None:
            stmt = stmt.where(BkTransaction.source_upload_id == source_upload_id)
        if split_parent_id is not None:
            stmt = stmt.where(BkTransaction.split_parent_id == split_parent_id)
        if not include_split_originals:
            stmt = stmt.where(BkTransaction.is_split.is_(False))
        stmt = stmt.order_by(BkTransaction.date, BkTransaction.split_index, BkTransaction.id)
        with self._scope(session) as s:
            return [_from_row(r) for r in s.scalars(stmt)]

    def update(self, tx: Transaction, *, session: Session | None = None) -> Transaction:
        if not tx.id:
            raise ValueError("cannot update a transaction without an id")
        with self._scope(session) as s:
            row = s.get(BkTransaction, tx.id)
            if row is None:
                raise TransactionNotFound(f"Transaction not found: {tx.id}")
            _apply_to_row(row, tx)
            s.flush()
        return tx

    def delete(self, tx_id: str, *, session: Session | None = None) -> bool:
        with self._scope(session) as s:
            result = s.execute(delete(BkTransaction).where(BkTransaction.id == tx_id))
            return bool(result.rowcount)

    def delete_split_parts(self, parent_id: str, *, session: Session | None = None) -> int:
        with self._scope(session) as s:
            result = s.execute(
                delete(BkTransaction).where(BkTransaction.split_parent_id == parent_id)
            )
            return int(result.rowcount or 0)

    def find_by_dates(
        self,
        dates: Iterable[str],
        *,
        company_id: str | None,
        session: Session | None = None,
    ) -> list[Transaction]:
        """Stored transactions of one company on any of ``dates`` (dedup candidates)."""

        wanted = sorted({d for d in dates if d})
        if not wanted:
            return []
        stmt = select(BkTransaction).where(
            BkTransaction.date.in_([_to_date(d) for d in wanted]),
            BkTransaction.split_parent_id.is_(None),
        )
        if company_id is None:
            stmt = stmt.where(BkTransaction.company_id.is_(None))
        else:
            stmt = stmt.where(BkTransaction.company_id == company_id)
        with self._scope(session) as s:
            return [_from_row(r) for r in s.scalars(stmt)]

    # ---- Rules -------------------------------------------------------------

    def create_rule(
        self,
        rule: ClassificationRule,
        *,
        user_id: str | None = None,
        session: Session | None = None,
    ) -> ClassificationRule:
        with self._scope(session) as s:
            s.add(
                BkClassificationRule(
                    id=rule.id,
                    user_id=user_id,
                    keywords=list(rule.keywords),
                    category=rule.category.value,
                    subcategory=rule.subcategory,
                    priority=rule.priority,
                    is_active=rule.is_active,
                    created_at=rule.created_at,
                )
            )
            s.flush()
        _logger.info("rules:created id=%s category=%s", rule.id, rule.category.name)
        return rule

    def list_rules(
        self,
        *,
        user_id: str | None = None,
        active_only: bool = False,
        session: Session | None = None,
    ) -> list[ClassificationRule]:
        stmt = select(BkClassificationRule)
        if user_id is not None:
            stmt = stmt.where(BkClassificationRule.user_id == user_id)
        if active_only:
            stmt = stmt.where(BkClassificationRule.is_active.is_(True))
        stmt = stmt.order_by(
            BkClassificationRule.priority.desc(), BkClassificationRule.created_at.desc()
        )
        with self._scope(session) as s:
            return [_rule_from_row(r) for r in s.scalars(stmt)]

    def update_rule(
        self,
        rule_id: str,
        *,
        session: Session | None = None,
        **changes: Any,
    ) -> ClassificationRule:
        """Update rule fields; the merged rule is re-validated before saving."""

        with self._scope(session) as s:
            row = s.get(BkClassificationRule, rule_id)
            if row is None:
                raise LookupError(f"Rule not found: {rule_id}")
            merged = replace(_rule_from_row(row), **changes)
            row.keywords = list(merged.keywords)
            row.category = merged.category.value
            row.subcategory = merged.subcategory
            row.priority = merged.priority
            row.is_active = merged.is_active
            s.flush()
        return merged

    def delete_rule(self, rule_id: str, *, session: Session | None = None) -> bool:
        with self._scope(session) as s:
            result = s.execute(
                delete(BkClassificationRule).where(BkClassificationRule.id == rule_id)
            )
            return bool(result.rowcount)

    # ---- Import batches ----------------------------------------------------

    def record_import_batch(
        self,
        batch: ImportBatch,
        *,
        company_id: str | None,
        imported_count: int,
        duplicate_count: int,
        date_range: tuple[str | None, str | None] = (None, None),
        session: Session | None = None,
    ) -> None:
        """Insert the record of a confirmed import.

        Must run before the batch's transactions are created in the same
        session since they reference it.
        """

        with self._scope(session) as s:
            s.add(
                BkImportBatch(
                    id=batch.id,
                    company_id=company_id,
                    file_name=batch.file_name,
                    bank_format=batch.bank_format,
                    bank_name=batch.bank_name,
                    status=ImportStatus.CONFIRMED.value,
                    parsed_count=batch.parsed_count,
                    imported_count=imported_count,
                    duplicate_count=duplicate_count,
                    date_range_start=_to_date(date_range[0]),
                    date_range_end=_to_date(date_range[1]),
                    errors=[dict(e) for e in batch.errors] or None,
                    created_at=batch.created_at,
                )
            )
            s.flush()

    def list_import_batches(
        self,
        *,
        company_id: str | None = None,
        session: Session | None = None,
    ) -> list[dict[str, Any]]:
        stmt = select(BkImportBatch).order_by(BkImportBatch.created_at.desc())
        if company_id is not None:
            stmt = stmt.where(BkImportBatch.company_id == company_id)
        with self._scope(session) as s:
            return [_batch_to_dict(r) for r in s.scalars(stmt)]

    def delete_import_batch(
        self,
        batch_id: str,
        *,
        delete_transactions: bool = False,
        session: Session | None = None,
    ) -> int:
        """Delete an import record; return the number of transactions removed.

        Without ``delete_transactions`` the imported rows stay and lose their
        link to the batch.
        """

        with self._scope(session) as s:
            removed = 0
            if delete_transactions:
                result = s.execute(
                    delete(BkTransaction).where(BkTransaction.source_upload_id == batch_id)
                )
                removed = int(result.rowcount or 0)
            else:
                for row in s.scalars(
                    select(BkTransaction).where(BkTransaction.source_upload_id == batch_id)
                ):
                    row.source_upload_id = None
            s.execute(delete(BkImportBatch).where(BkImportBatch.id == batch_id))
        _logger.info(
            "imports:deleted batch_id=%s transactions_removed=%d", batch_id, removed
        )
        return removed

    # ---- AI usage ----------------------------------------------------------

    def record_usage(self, record: Mapping[str, Any], *, session: Session | None = None) -> None:
        with self._scope(session) as s:
            s.add(
                BkAiUsage(
                    user_id=record.get("user_id"),
                    transaction_count=int(record.get("transaction_count") or 0),
                    success_count=int(record.get("success_count") or 0),
                    model=record.get("model"),
                    category_set_version=record.get("category_set_version"),
                )
            )

    def usage_records(self, *, session: Session | None = None) -> list[dict[str, Any]]:
        with self._scope(session) as s:
            rows = s.scalars(select(BkAiUsage).order_by(BkAiUsage.id))
            return [
                {
                    "user_id": r.user_id,
                    "transaction_count": r.transaction_count,
                    "success_count": r.success_count,
                    "model": r.model,
                }
                for r in rows
            ]


__all__ = ["TransactionStore", "new_id"]
