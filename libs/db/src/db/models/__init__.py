"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the bookkeeping models used by ``bookkeeping``.
"""

from .bookkeeping import Base, BkAiUsage, BkClassificationRule, BkImportBatch, BkTransaction

__all__ = [
    "Base",
    "BkAiUsage",
    "BkClassificationRule",
    "BkImportBatch",
    "BkTransaction",
]
