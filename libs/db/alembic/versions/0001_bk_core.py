# ruff: noqa: I001
"""Bookkeeping core tables: import batches, transactions, rules, AI usage.

Revision ID: 0001_bk_core
Revises: None
Create Date: 2025-11-02
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_bk_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "bk_import_batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(), nullable=True),
        sa.Column("file_name", sa.String(), nullable=False),
        sa.Column("bank_format", sa.String(), nullable=False),
        sa.Column("bank_name", sa.String(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("parsed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("imported_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duplicate_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("date_range_start", sa.Date(), nullable=True),
        sa.Column("date_range_end", sa.Date(), nullable=True),
        sa.Column("errors", sa.JSON(), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint(
            "status IN ('uploaded','previewed','confirmed','cancelled')",
            name="ck_bk_import_batches_status",
        ),
    )
    op.create_index("ix_bk_import_batches_company_id", "bk_import_batches", ["company_id"])

    op.create_table(
        "bk_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(), nullable=True),
        sa.Column("date", sa.Date(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("subcategory", sa.String(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="0"),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("classification_source", sa.String(16), nullable=True),
        sa.Column("payee", sa.String(), nullable=True),
        sa.Column("vendor", sa.String(), nullable=True),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("check_number", sa.String(), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=True),
        sa.Column("bank_type", sa.String(), nullable=True),
        sa.Column("section", sa.String(32), nullable=True),
        sa.Column("parse_issue", sa.Text(), nullable=True),
        sa.Column(
            "source_upload_id",
            sa.String(36),
            sa.ForeignKey("bk_import_batches.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "split_parent_id",
            sa.String(36),
            sa.ForeignKey("bk_transactions.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("is_split", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("split_index", sa.Integer(), nullable=True),
        sa.Column("original_amount", sa.Numeric(18, 2), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "type IN ('income','expense','transfer')",
            name="ck_bk_transactions_type",
        ),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_bk_transactions_confidence",
        ),
    )
    op.create_index("ix_bk_transactions_company_date", "bk_transactions", ["company_id", "date"])
    op.create_index("ix_bk_transactions_split_parent", "bk_transactions", ["split_parent_id"])
    op.create_index("ix_bk_transactions_source_upload", "bk_transactions", ["source_upload_id"])

    op.create_table(
        "bk_classification_rules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("subcategory", sa.String(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_bk_classification_rules_user_id", "bk_classification_rules", ["user_id"]
    )

    op.create_table(
        "bk_ai_usage",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("transaction_count", sa.Integer(), nullable=False),
        sa.Column("success_count", sa.Integer(), nullable=False),
        sa.Column("model", sa.String(), nullable=True),
        sa.Column("category_set_version", sa.String(16), nullable=True),
        _timestamp("created_at"),
    )


def downgrade() -> None:
    op.drop_table("bk_ai_usage")
    op.drop_index("ix_bk_classification_rules_user_id", table_name="bk_classification_rules")
    op.drop_table("bk_classification_rules")
    op.drop_index("ix_bk_transactions_source_upload", table_name="bk_transactions")
    op.drop_index("ix_bk_transactions_split_parent", table_name="bk_transactions")
    op.drop_index("ix_bk_transactions_company_date", table_name="bk_transactions")
    op.drop_table("bk_transactions")
    op.drop_index("ix_bk_import_batches_company_id", table_name="bk_import_batches")
    op.drop_table("bk_import_batches")
