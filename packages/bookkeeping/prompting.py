"""Prompt construction for Tier 2 (AI batch) classification.

The model sees one pipe-delimited line per transaction::

    <id>|<description>|<absolute amount>|<income|expense|transfer>

and answers with a bare JSON array, one object per line. Category keys are
the member names of :class:`~bookkeeping.categories.Category` so the reply can
be validated against the same closed vocabulary Tier 1 uses.
"""

from __future__ import annotations

from collections.abc import Sequence

from .categories import CATEGORY_SET_VERSION, INCOME_CATEGORIES, Category, category_keys
from .models import Transaction

# Hints folded into the instructions; the model is free to disagree.
VENDOR_HEURISTICS: tuple[tuple[str, Category], ...] = (
    ("Gas stations", Category.CAR_TRUCK_EXPENSES),
    ("Software (Adobe, Microsoft, etc.)", Category.SOFTWARE_SUBSCRIPTIONS),
    ("Office supply stores", Category.OFFICE_EXPENSES),
    ("Hardware stores", Category.MATERIALS_SUPPLIES),
    ("Shipping (UPS, FedEx)", Category.OTHER_EXPENSES),
    ("ATM and cash withdrawals", Category.OWNER_DRAWS),
    ("Transfers between own accounts", Category.PERSONAL_TRANSFER),
)


def _field(value: str) -> str:
    # Pipes and newlines would break the line format
    return " ".join(value.replace("|", "/").split())


def format_transaction_line(tx: Transaction, tx_id: str) -> str:
    return f"{_field(tx_id)}|{_field(tx.description)}|{abs(tx.amount):.2f}|{tx.type.value}"


def build_system_instructions() -> str:
    """Return the fixed instructions shared by every batch."""

    keys = category_keys()
    income_keys = ", ".join(c.name for c in Category if c in INCOME_CATEGORIES)
    hints = "\n".join(f"   - {label} -> {cat.name}" for label, cat in VENDOR_HEURISTICS)
    return (
        "You are a bookkeeping assistant that classifies bank transactions into IRS "
        "Schedule C categories for small business tax purposes.\n"
        "\n"
        "RULES:\n"
        f"1. Only use categories from this list (version {CATEGORY_SET_VERSION}): "
        f"{', '.join(keys)}\n"
        f"2. Income lines may only use: {income_keys}. Expense lines never use those.\n"
        "3. Be conservative. If unsure use OTHER_EXPENSES for business expenses or "
        "PERSONAL_EXPENSE when it is likely personal, and lower the confidence.\n"
        "4. Extract the vendor or merchant name from the description.\n"
        "5. Consider the amount (small restaurant amounts are MEALS).\n"
        "6. Common patterns:\n"
        f"{hints}\n"
        "\n"
        "For each transaction return id (unchanged), category, subcategory (or null), "
        "vendor, confidence (0.0 to 1.0) and reasoning (one sentence).\n"
        "Respond ONLY with a JSON array, no markdown:\n"
        '[{"id": "...", "category": "CATEGORY_KEY", "subcategory": null, '
        '"vendor": "...", "confidence": 0.85, "reasoning": "..."}]'
    )


def build_user_content(lines: Sequence[str]) -> str:
    return "TRANSACTIONS (id|description|amount|type):\n" + "\n".join(lines)


__all__ = [
    "VENDOR_HEURISTICS",
    "build_system_instructions",
    "build_user_content",
    "format_transaction_line",
]
