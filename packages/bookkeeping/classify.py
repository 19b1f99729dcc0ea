"""Two-tier classification pipeline: Tier 1 rules, then AI for what is left.

Tier 2 output only replaces a Tier 1 result when the model returned a known
category. ``type`` is never changed by either tier.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace

from .categorize import AiClassificationResponse, AiResult, UsageSink, classify_with_ai
from .categories import INCOME_CATEGORIES
from .logging_setup import get_logger
from .models import ClassificationRule, ClassificationSource, Transaction, TransactionType
from .rules import RuleSnapshot, classify_transactions, needs_ai_review

_REVIEW_THRESHOLD: float = 0.7

_logger = get_logger("bookkeeping.classify")


def _conflicts_with_type(tx: Transaction, result: AiResult) -> bool:
    if result.category is None or tx.type is TransactionType.TRANSFER:
        return False
    is_income_category = result.category in INCOME_CATEGORIES
    return is_income_category != (tx.type is TransactionType.INCOME)


def apply_ai_result(tx: Transaction, result: AiResult) -> Transaction:
    """Overlay one Tier 2 result on a transaction.

    Results without a category leave the Tier 1 classification in place and
    keep the row flagged. A category that contradicts the transaction type
    (an income category on an expense, or the reverse) is kept but flagged.
    """

    if result.category is None:
        return replace(tx, needs_review=True, reasoning=result.reasoning or tx.reasoning)
    review = (
        result.confidence < _REVIEW_THRESHOLD
        or tx.parse_issue is not None
        or _conflicts_with_type(tx, result)
    )
    return replace(
        tx,
        category=result.category,
        subcategory=result.subcategory,
        confidence=result.confidence,
        needs_review=review,
        vendor=result.vendor or tx.vendor,
        reasoning=result.reasoning,
        classification_source=ClassificationSource.AI,
    )


def merge_ai_results(
    transactions: Sequence[Transaction],
    response: AiClassificationResponse,
) -> list[Transaction]:
    """Apply AI results to ``transactions`` by id (or position when id-less)."""

    by_id = response.by_id()
    out: list[Transaction] = []
    applied = 0
    for i, tx in enumerate(transactions):
        result = by_id.get(str(tx.id)) if tx.id else by_id.get(f"row-{i}")
        if result is None:
            out.append(tx)
            continue
        out.append(apply_ai_result(tx, result))
        applied += result.category is not None
    _logger.info("tier2:merge num_transactions=%d applied=%d", len(out), applied)
    return out


def classify_all(
    transactions: Sequence[Transaction],
    rules: Iterable[ClassificationRule] | RuleSnapshot | None = None,
    *,
    use_ai: bool = False,
    user_id: str | None = None,
    usage_sink: UsageSink | None = None,
    **ai_options: object,
) -> list[Transaction]:
    """Run Tier 1 and, when ``use_ai`` is set, send the review queue to Tier 2."""

    tier1 = classify_transactions(transactions, rules)
    if not use_ai:
        return tier1
    pending_idx = [i for i, tx in enumerate(tier1) if needs_ai_review(tx)]
    if not pending_idx:
        return tier1
    pending = [tier1[i] for i in pending_idx]
    # Position ids are relative to the submitted list
    response = classify_with_ai(pending, user_id=user_id, usage_sink=usage_sink, **ai_options)
    merged = merge_ai_results(pending, response)
    out = list(tier1)
    for i, tx in zip(pending_idx, merged, strict=True):
        out[i] = tx
    return out


__all__ = ["apply_ai_result", "classify_all", "merge_ai_results"]
