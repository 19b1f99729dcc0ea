"""Tier 1 classification: user keyword rules, then built-in heuristics.

Classification is a pure function of ``(transaction, RuleSnapshot)``. The
snapshot is an immutable, pre-sorted tuple of the active rules taken once at
the start of a run, so rules created or deleted while a batch is being
classified cannot produce a torn read.

Order of evaluation:

1. User rules: case-insensitive substring match of any keyword against
   ``description + " " + payee``. Highest ``priority`` wins; ties go to the
   most recently created rule.
2. Built-in heuristics keyed on the transaction type (``DEPOSIT`` on income,
   ``FEE`` on expenses).
3. Built-in vendor keyword table, partitioned by type.
4. ``Uncategorized`` at low confidence, flagged for review.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from .categories import Category
from .ingest.utils import extract_check_number
from .logging_setup import get_logger
from .models import (
    ClassificationResult,
    ClassificationRule,
    ClassificationSource,
    Transaction,
    TransactionType,
)

# ---- Tunables (private) ------------------------------------------------------

_REVIEW_THRESHOLD: float = 0.7
_USER_RULE_CONFIDENCE: float = 0.95
_HEURISTIC_CONFIDENCE: float = 0.8
_KEYWORD_CONFIDENCE: float = 0.75
_DEFAULT_CONFIDENCE: float = 0.3

_logger = get_logger("bookkeeping.rules")


def _word_pattern(*words: str) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(w) for w in words)
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


# (type, uppercase substring, category) evaluated before the keyword table.
# Plain containment, so "REMOTEDEPOSIT" and "SERVICEFEE" match too.
_TYPE_HEURISTICS: tuple[tuple[TransactionType, str, Category], ...] = (
    (TransactionType.INCOME, "DEPOSIT", Category.BUSINESS_INCOME),
    (TransactionType.EXPENSE, "FEE", Category.BANK_FEES),
)

_INCOME_KEYWORDS: tuple[tuple[Category, re.Pattern[str]], ...] = (
    (
        Category.GROSS_RECEIPTS,
        _word_pattern("payment received", "invoice payment", "customer payment"),
    ),
    (Category.OTHER_INCOME, _word_pattern("interest paid", "interest payment")),
)

_EXPENSE_KEYWORDS: tuple[tuple[Category, re.Pattern[str]], ...] = (
    (Category.OFFICE_EXPENSES, _word_pattern("staples", "office depot", "office supplies")),
    (
        Category.SOFTWARE_SUBSCRIPTIONS,
        _word_pattern("microsoft", "adobe", "quickbooks", "software", "subscription"),
    ),
    (
        Category.CAR_TRUCK_EXPENSES,
        _word_pattern("shell", "exxon", "mobil", "chevron", "bp", "gas station", "fuel"),
    ),
    (
        Category.TRAVEL,
        _word_pattern(
            "hotel", "marriott", "hilton", "american airlines", "delta", "uber", "lyft",
            "rental car",
        ),
    ),
    (
        Category.MEALS,
        _word_pattern("restaurant", "starbucks", "coffee", "lunch", "dinner", "catering"),
    ),
    (
        Category.UTILITIES,
        _word_pattern("verizon", "att", "at&t", "comcast", "internet", "phone service", "electric"),
    ),
    (
        Category.BANK_FEES,
        _word_pattern("overdraft", "maintenance fee", "atm fee", "service charge"),
    ),
    (
        Category.RENT_LEASE_OTHER,
        _word_pattern("rent", "lease", "property management", "landlord"),
    ),
    (
        Category.INSURANCE_OTHER,
        _word_pattern("insurance", "policy premium", "liability insurance"),
    ),
    (
        Category.ADVERTISING,
        _word_pattern("google ads", "facebook ads", "marketing", "advertising"),
    ),
)


# ---------------------------------------------------------------------------
# Payee extraction
# ---------------------------------------------------------------------------


def extract_payee(description: str | None) -> str | None:
    """Return the first whitespace-delimited token of ``description``.

    Bank statements print only a number for checks, so ``check #1234`` has no
    payee and returns ``None`` (the transaction then needs a vendor assigned
    by hand).
    """

    if not description or not description.strip():
        return None
    if extract_check_number(description) is not None:
        return None
    return description.split()[0]


# ---------------------------------------------------------------------------
# Rule snapshot
# ---------------------------------------------------------------------------


def _rule_sort_key(rule: ClassificationRule) -> tuple[int, float]:
    return (-rule.priority, -rule.created_at.timestamp())


@dataclass(frozen=True, slots=True)
class RuleSnapshot:
    """Active rules frozen in evaluation order for one classification run."""

    rules: tuple[ClassificationRule, ...] = ()
    taken_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def of(cls, rules: Iterable[ClassificationRule] | None) -> RuleSnapshot:
        active = [r for r in (rules or ()) if r.is_active]
        # sorted() is stable: equal keys keep their input order
        return cls(rules=tuple(sorted(active, key=_rule_sort_key)))

    def first_match(self, search_text: str) -> ClassificationRule | None:
        text = search_text.lower()
        for rule in self.rules:
            if rule.matches(text):
                return rule
        return None

    def __len__(self) -> int:
        return len(self.rules)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def _result(
    category: Category,
    confidence: float,
    source: ClassificationSource,
    *,
    payee: str | None,
    subcategory: str | None = None,
    rule_id: str | None = None,
    reasoning: str | None = None,
) -> ClassificationResult:
    return ClassificationResult(
        category=category,
        confidence=confidence,
        needs_review=confidence < _REVIEW_THRESHOLD,
        source=source,
        payee=payee,
        subcategory=subcategory,
        rule_id=rule_id,
        reasoning=reasoning,
    )


def classify_transaction(
    tx: Transaction,
    snapshot: RuleSnapshot | None = None,
) -> ClassificationResult:
    """Classify one transaction with Tier 1 rules (pure, repeatable)."""

    snapshot = snapshot or RuleSnapshot()
    description = tx.description or ""
    payee = extract_payee(description)
    search_text = f"{description} {payee or ''}".lower()

    rule = snapshot.first_match(search_text)
    if rule is not None:
        return _result(
            rule.category,
            _USER_RULE_CONFIDENCE,
            ClassificationSource.RULE,
            payee=payee,
            subcategory=rule.subcategory,
            rule_id=rule.id,
            reasoning=f"Matched user rule {rule.id}",
        )

    upper = description.upper()
    for tx_type, needle, category in _TYPE_HEURISTICS:
        if tx.type is tx_type and needle in upper:
            return _result(
                category,
                _HEURISTIC_CONFIDENCE,
                ClassificationSource.BUILTIN,
                payee=payee,
                reasoning=f"Built-in {tx_type.value} heuristic",
            )

    if tx.type is TransactionType.INCOME:
        table = _INCOME_KEYWORDS
    elif tx.type is TransactionType.EXPENSE:
        table = _EXPENSE_KEYWORDS
    else:
        table = ()
    for category, pattern in table:
        m = pattern.search(search_text)
        if m:
            return _result(
                category,
                _KEYWORD_CONFIDENCE,
                ClassificationSource.BUILTIN,
                payee=payee,
                reasoning=f"Matched keyword {m.group(0).lower()!r}",
            )

    return _result(
        Category.UNCATEGORIZED,
        _DEFAULT_CONFIDENCE,
        ClassificationSource.DEFAULT,
        payee=payee,
    )


def apply_classification(tx: Transaction, result: ClassificationResult) -> Transaction:
    """Return ``tx`` updated with a classification; ``type`` is never touched.

    A row flagged during parsing stays flagged for review regardless of the
    classifier's confidence.
    """

    return replace(
        tx,
        category=result.category,
        subcategory=result.subcategory,
        confidence=result.confidence,
        needs_review=result.needs_review or tx.parse_issue is not None,
        payee=tx.payee if tx.payee is not None else result.payee,
        vendor=result.vendor or tx.vendor,
        reasoning=result.reasoning,
        classification_source=result.source,
    )


def classify_transactions(
    transactions: Sequence[Transaction],
    rules: Iterable[ClassificationRule] | RuleSnapshot | None = None,
) -> list[Transaction]:
    """Run Tier 1 over ``transactions`` against a single rule snapshot."""

    snapshot = rules if isinstance(rules, RuleSnapshot) else RuleSnapshot.of(rules)
    out = [apply_classification(tx, classify_transaction(tx, snapshot)) for tx in transactions]
    review = sum(1 for tx in out if tx.needs_review)
    _logger.info(
        "tier1:done num_transactions=%d rules=%d needs_review=%d",
        len(out),
        len(snapshot),
        review,
    )
    return out


def needs_ai_review(tx: Transaction) -> bool:
    """Tier 2 candidates: anything Tier 1 left flagged for review."""

    return tx.needs_review


__all__ = [
    "RuleSnapshot",
    "apply_classification",
    "classify_transaction",
    "classify_transactions",
    "extract_payee",
    "needs_ai_review",
]
