from __future__ import annotations

import datetime as dt
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------
# Import batches: bk_import_batches
# ---------------------------


class BkImportBatch(Base):
    __tablename__ = "bk_import_batches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    company_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    bank_format: Mapped[str] = mapped_column(String, nullable=False)
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    parsed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    imported_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duplicate_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    date_range_start: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    date_range_end: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    errors: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('uploaded','previewed','confirmed','cancelled')",
            name="ck_bk_import_batches_status",
        ),
    )


# ---------------------------
# Core: bk_transactions
# ---------------------------


class BkTransaction(Base):
    __tablename__ = "bk_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    company_id: Mapped[str | None] = mapped_column(String, nullable=True)
    date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)

    category: Mapped[str | None] = mapped_column(String, nullable=True)
    subcategory: Mapped[str | None] = mapped_column(String, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    classification_source: Mapped[str | None] = mapped_column(String(16), nullable=True)
    payee: Mapped[str | None] = mapped_column(String, nullable=True)
    vendor: Mapped[str | None] = mapped_column(String, nullable=True)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)

    check_number: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    bank_type: Mapped[str | None] = mapped_column(String, nullable=True)
    section: Mapped[str | None] = mapped_column(String(32), nullable=True)
    parse_issue: Mapped[str | None] = mapped_column(Text, nullable=True)

    source_upload_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("bk_import_batches.id", ondelete="SET NULL"),
        nullable=True,
    )
    split_parent_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("bk_transactions.id", ondelete="CASCADE"),
        nullable=True,
    )
    is_split: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    split_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    original_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            "type IN ('income','expense','transfer')",
            name="ck_bk_transactions_type",
        ),
        CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_bk_transactions_confidence",
        ),
        Index("ix_bk_transactions_company_date", "company_id", "date"),
        Index("ix_bk_transactions_split_parent", "split_parent_id"),
        Index("ix_bk_transactions_source_upload", "source_upload_id"),
    )


# ---------------------------
# Rules: bk_classification_rules
# ---------------------------


class BkClassificationRule(Base):
    __tablename__ = "bk_classification_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


# ---------------------------
# AI usage log: bk_ai_usage
# ---------------------------


class BkAiUsage(Base):
    __tablename__ = "bk_ai_usage"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False)
    model: Mapped[str | None] = mapped_column(String, nullable=True)
    category_set_version: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
