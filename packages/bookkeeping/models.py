"""Data models for the ingestion/classification pipeline.

``Transaction`` is the canonical record every bank format is normalized into.
It is immutable; pipeline stages derive updated copies with
``dataclasses.replace`` so a classification pass can never leave a
half-updated record behind.

Sign convention: ``amount`` is positive for inflows and negative for outflows.
``type`` is decided once when the record is created (see
:func:`resolve_transaction_type`) and classification never rewrites it.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from .categories import Category, parse_category
from .currency import round_amount
from .errors import ImportStateError, InvalidRule

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TransactionType(StrEnum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class PaymentMethod(StrEnum):
    CASH = "cash"
    CHECK = "check"
    CHECK_DEPOSIT = "check_deposit"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"
    VENMO = "venmo"
    ZELLE = "zelle"
    OTHER_ELECTRONIC = "other_electronic"
    OTHER = "other"


class ClassificationSource(StrEnum):
    RULE = "rule"
    BUILTIN = "builtin"
    DEFAULT = "default"
    AI = "ai"
    SPLIT = "split"
    MANUAL = "manual"


class ImportStatus(StrEnum):
    UPLOADED = "uploaded"
    PREVIEWED = "previewed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Type resolution (single precedence order for every source)
# ---------------------------------------------------------------------------


def _coerce_type(value: object) -> TransactionType | None:
    if isinstance(value, TransactionType):
        return value
    if isinstance(value, str):
        s = value.strip().lower()
        for t in TransactionType:
            if s == t.value:
                return t
    return None


def resolve_transaction_type(
    *,
    explicit: object = None,
    source_hint: object = None,
    amount: Decimal | None = None,
) -> TransactionType:
    """Decide a transaction's type from the strongest available signal.

    Precedence: an explicit type value, then the source's own column/section
    semantics (``source_hint``), then the sign of the parsed amount (zero
    counts as income).
    """

    for candidate in (explicit, source_hint):
        t = _coerce_type(candidate)
        if t is not None:
            return t
    if amount is not None and amount < 0:
        return TransactionType.EXPENSE
    return TransactionType.INCOME


def align_amount_sign(amount: Decimal, tx_type: TransactionType) -> Decimal:
    """Apply the canonical sign for ``tx_type`` (transfers keep their sign)."""

    if tx_type is TransactionType.EXPENSE:
        return -abs(amount)
    if tx_type is TransactionType.INCOME:
        return abs(amount)
    return amount


# ---------------------------------------------------------------------------
# Canonical transaction
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Transaction:
    """A canonical transaction.

    ``date`` is an ISO ``YYYY-MM-DD`` string, or ``None`` when the source
    token was malformed (``parse_issue`` then says why and ``needs_review`` is
    set). ``amount`` is quantized to the cent on construction.
    """

    id: str | None
    date: str | None
    description: str
    amount: Decimal
    type: TransactionType
    category: Category | None = None
    subcategory: str | None = None
    confidence: float = 0.0
    needs_review: bool = True
    payee: str | None = None
    source_upload_id: str | None = None
    split_parent_id: str | None = None
    # Source details
    check_number: str | None = None
    payment_method: PaymentMethod | None = None
    bank_type: str | None = None
    section: str | None = None
    row_number: int | None = None
    parse_issue: str | None = None
    # Classification details
    vendor: str | None = None
    reasoning: str | None = None
    classification_source: ClassificationSource | None = None
    # Split bookkeeping
    is_split: bool = False
    split_index: int | None = None
    original_amount: Decimal | None = None
    company_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", round_amount(self.amount))
        if self.original_amount is not None:
            object.__setattr__(self, "original_amount", round_amount(self.original_amount))
        conf = float(self.confidence)
        if not 0.0 <= conf <= 1.0:
            raise ValueError(f"confidence must be within [0,1], got {self.confidence!r}")
        object.__setattr__(self, "confidence", conf)

    @property
    def is_income(self) -> bool:
        return self.type is TransactionType.INCOME

    @property
    def is_expense(self) -> bool:
        return self.type is TransactionType.EXPENSE

    def as_dict(self) -> dict[str, Any]:
        """JSON-friendly view (amounts as strings, enums as values)."""

        return {
            "id": self.id,
            "date": self.date,
            "description": self.description,
            "amount": f"{self.amount:.2f}",
            "type": self.type.value,
            "category": self.category.value if self.category else None,
            "subcategory": self.subcategory,
            "confidence": self.confidence,
            "needsReview": self.needs_review,
            "payee": self.payee,
            "checkNumber": self.check_number,
            "paymentMethod": self.payment_method.value if self.payment_method else None,
            "sourceUploadId": self.source_upload_id,
            "splitParentId": self.split_parent_id,
            "parseIssue": self.parse_issue,
        }


# ---------------------------------------------------------------------------
# Classification rule and result
# ---------------------------------------------------------------------------


def _normalize_keywords(keywords: Iterable[str]) -> tuple[str, ...]:
    cleaned = (" ".join(str(k).split()).lower() for k in keywords if isinstance(k, str))
    return tuple(dict.fromkeys(k for k in cleaned if k))


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    """A user-owned keyword rule.

    Keywords are lowercased and de-duplicated (order kept). A rule with no
    usable keyword or without a known category raises :class:`InvalidRule`.
    """

    id: str
    keywords: tuple[str, ...]
    category: Category
    priority: int = 0
    is_active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    subcategory: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.keywords, str):
            raise InvalidRule("Rule keywords must be a list of strings")
        keywords = _normalize_keywords(self.keywords or ())
        if not keywords:
            raise InvalidRule("Rule requires at least one keyword")
        if self.category is None or (isinstance(self.category, str) and not self.category.strip()):
            raise InvalidRule("Rule category is required")
        category = parse_category(self.category)
        if category is None:
            raise InvalidRule(f"Unknown category: {self.category!r}")
        object.__setattr__(self, "keywords", keywords)
        object.__setattr__(self, "category", category)
        object.__setattr__(self, "priority", int(self.priority))

    def matches(self, search_text: str) -> bool:
        """True when any keyword is a substring of the lowercased text."""

        return any(k in search_text for k in self.keywords)


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Output of either classification tier for one transaction."""

    category: Category | None
    confidence: float
    needs_review: bool
    source: ClassificationSource
    payee: str | None = None
    subcategory: str | None = None
    vendor: str | None = None
    reasoning: str | None = None
    rule_id: str | None = None


# ---------------------------------------------------------------------------
# Normalizer output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AccountSummary:
    """Account details printed on a statement (PDF sources only)."""

    account_number: str | None = None
    beginning_balance: Decimal | None = None
    ending_balance: Decimal | None = None
    statement_year: int | None = None


@dataclass(slots=True)
class NormalizationResult:
    """Canonical transactions plus the detection report for one file.

    ``errors`` holds one ``{"row": n, "error": message}`` entry per flagged
    or skipped row (CSV rows are numbered from 1 including the header line;
    PDF rows by text line). ``success`` is false only when nothing at all
    could be extracted, with ``error`` explaining why.
    """

    success: bool
    transactions: list[Transaction] = field(default_factory=list)
    detected_bank: str | None = None
    detected_bank_name: str = "Unknown"
    requires_mapping: bool = False
    source_kind: str = "csv"
    headers: list[str] = field(default_factory=list)
    sample_rows: list[dict[str, str]] = field(default_factory=list)
    total_rows: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    account: AccountSummary | None = None

    @property
    def parsed_count(self) -> int:
        return len(self.transactions)

    def detection_report(self) -> dict[str, Any]:
        return {
            "detectedBank": self.detected_bank,
            "detectedBankName": self.detected_bank_name,
            "requiresMapping": self.requires_mapping,
        }


# ---------------------------------------------------------------------------
# Import batch
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ImportBatch:
    """An uploaded file held for preview until confirmed or cancelled."""

    id: str
    file_name: str
    bank_format: str
    bank_name: str | None = None
    parsed_count: int = 0
    status: ImportStatus = ImportStatus.UPLOADED
    transactions: list[Transaction] = field(default_factory=list)
    errors: list[Mapping[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    _ALLOWED = {
        ImportStatus.UPLOADED: {ImportStatus.PREVIEWED, ImportStatus.CANCELLED},
        ImportStatus.PREVIEWED: {
            ImportStatus.PREVIEWED,
            ImportStatus.CONFIRMED,
            ImportStatus.CANCELLED,
        },
        ImportStatus.CONFIRMED: set(),
        ImportStatus.CANCELLED: set(),
    }

    def transition(self, new_status: ImportStatus) -> None:
        allowed = self._ALLOWED[self.status]
        if new_status not in allowed:
            raise ImportStateError(
                f"import batch {self.id}: cannot move from {self.status.value} to "
                f"{new_status.value}"
            )
        self.status = new_status


__all__ = [
    "AccountSummary",
    "NormalizationResult",
    "ClassificationResult",
    "ClassificationRule",
    "ClassificationSource",
    "ImportBatch",
    "ImportStatus",
    "PaymentMethod",
    "Transaction",
    "TransactionType",
    "align_amount_sign",
    "resolve_transaction_type",
]
