"""Public interface for the ``bookkeeping`` package.

Bank statement ingestion, two-tier transaction classification, split
reconciliation and import orchestration. This module only re-exports the
stable import surface; there is no runtime logic here.
"""

from .categories import CATEGORY_SET_VERSION, Category, parse_category
from .categorize import AiClassificationResponse, AiResult, classify_with_ai
from .classify import classify_all, merge_ai_results
from .errors import (
    BookkeepingError,
    DivisionByZero,
    ImportStateError,
    InvalidMapping,
    InvalidRule,
    InvalidSplit,
    TransactionNotFound,
)
from .importer import (
    ImportPreview,
    ImportSession,
    ImportState,
    ImportSummary,
    classify_unclassified,
)
from .models import (
    ClassificationResult,
    ClassificationRule,
    ImportBatch,
    ImportStatus,
    NormalizationResult,
    PaymentMethod,
    Transaction,
    TransactionType,
)
from .normalizers import get_supported_banks, normalize_statement, summarize_transactions
from .persistence import TransactionStore
from .rules import RuleSnapshot, classify_transaction, classify_transactions
from .splits import (
    SplitPart,
    SplitResult,
    SplitValidation,
    bulk_split_transactions,
    get_split_parts,
    split_transaction,
    unsplit_transaction,
    validate_split_parts,
)

__all__ = [
    # Normalization
    "normalize_statement",
    "summarize_transactions",
    "get_supported_banks",
    # Classification
    "classify_transaction",
    "classify_transactions",
    "classify_with_ai",
    "classify_all",
    "merge_ai_results",
    "RuleSnapshot",
    "AiResult",
    "AiClassificationResponse",
    # Splits
    "validate_split_parts",
    "split_transaction",
    "unsplit_transaction",
    "bulk_split_transactions",
    "get_split_parts",
    "SplitPart",
    "SplitResult",
    "SplitValidation",
    # Import
    "ImportSession",
    "ImportState",
    "ImportPreview",
    "ImportSummary",
    "classify_unclassified",
    "TransactionStore",
    # Models / types
    "Category",
    "CATEGORY_SET_VERSION",
    "parse_category",
    "Transaction",
    "TransactionType",
    "PaymentMethod",
    "ClassificationRule",
    "ClassificationResult",
    "ImportBatch",
    "ImportStatus",
    "NormalizationResult",
    # Errors
    "BookkeepingError",
    "DivisionByZero",
    "ImportStateError",
    "InvalidMapping",
    "InvalidRule",
    "InvalidSplit",
    "TransactionNotFound",
]
