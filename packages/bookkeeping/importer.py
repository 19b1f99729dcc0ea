"""Statement import orchestration: upload, preview, confirm.

An :class:`ImportSession` drives one file at a time through::

    idle -> uploading -> preview -> importing -> success | error

Nothing is written before :meth:`ImportSession.confirm`. Confirming removes
duplicates (against stored rows of the company and within the file), runs
Tier 1 classification, and writes the surviving rows together with the
import record in a single database transaction. If the write fails the
session moves to ``error`` with the batch still pending, so the caller can
retry ``confirm`` or start over with a new upload.

Tier 2 is never run here; :func:`classify_unclassified` is the follow-up
step for the rows the summary reports as unclassified.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from .categorize import UsageSink, classify_with_ai
from .classify import merge_ai_results
from .duplicates import find_duplicates
from .errors import ImportStateError
from .logging_setup import get_logger, import_context
from .models import (
    ClassificationRule,
    ImportBatch,
    ImportStatus,
    NormalizationResult,
    Transaction,
)
from .normalizers import normalize_statement, summarize_transactions
from .persistence import TransactionStore, new_id
from .rules import RuleSnapshot, classify_transactions, needs_ai_review

# ---- Tunables (private) ------------------------------------------------------

_DEFAULT_SAMPLE_SIZE: int = 10

_logger = get_logger("bookkeeping.importer")


class ImportState(StrEnum):
    IDLE = "idle"
    UPLOADING = "uploading"
    PREVIEW = "preview"
    IMPORTING = "importing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ImportPreview:
    """What an upload produced, before anything is saved."""

    success: bool
    batch_id: str | None
    file_name: str
    parsed_count: int
    sample: list[dict[str, Any]] = field(default_factory=list)
    detection: dict[str, Any] = field(default_factory=dict)
    headers: list[str] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    totals: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def requires_mapping(self) -> bool:
        return bool(self.detection.get("requiresMapping"))


@dataclass(frozen=True, slots=True)
class ImportSummary:
    """Counts reported after a confirmed import."""

    batch_id: str
    imported: int
    duplicates: int
    classified: int
    unclassified: int
    unclassified_transactions: list[Transaction] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    date_range: tuple[str | None, str | None] = (None, None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "imported": self.imported,
            "duplicates": self.duplicates,
            "classified": self.classified,
            "unclassified": self.unclassified,
            "unclassifiedTransactions": [
                {
                    "id": tx.id,
                    "date": tx.date,
                    "description": tx.description,
                    "amount": f"{tx.amount:.2f}",
                }
                for tx in self.unclassified_transactions
            ],
            "errorCount": len(self.errors),
            "errors": self.errors[:10],
            "dateRange": {"start": self.date_range[0], "end": self.date_range[1]},
        }


def _date_range(transactions: Iterable[Transaction]) -> tuple[str | None, str | None]:
    dates = sorted(tx.date for tx in transactions if tx.date)
    return (dates[0], dates[-1]) if dates else (None, None)


class ImportSession:
    """One upload held in memory until it is confirmed or cancelled."""

    def __init__(self, store: TransactionStore, *, sample_size: int = _DEFAULT_SAMPLE_SIZE) -> None:
        self._store = store
        self._sample_size = sample_size
        self._state = ImportState.IDLE
        self._batch: ImportBatch | None = None
        self._content: bytes | str | None = None

    @property
    def state(self) -> ImportState:
        return self._state

    @property
    def batch(self) -> ImportBatch | None:
        return self._batch

    def _require(self, *allowed: ImportState, action: str) -> None:
        if self._state not in allowed:
            expected = ", ".join(s.value for s in allowed)
            raise ImportStateError(
                f"cannot {action} while {self._state.value} (expected {expected})"
            )

    def _held(self, action: str) -> tuple[ImportBatch, bytes | str]:
        if self._batch is None or self._content is None:
            raise ImportStateError(f"cannot {action}: no upload is held")
        return self._batch, self._content

    def _preview(self, result: NormalizationResult, file_name: str) -> ImportPreview:
        return ImportPreview(
            success=result.success,
            batch_id=self._batch.id if self._batch else None,
            file_name=file_name,
            parsed_count=result.parsed_count,
            sample=[tx.as_dict() for tx in result.transactions[: self._sample_size]],
            detection=result.detection_report(),
            headers=list(result.headers),
            errors=list(result.errors),
            totals=summarize_transactions(result.transactions),
            error=result.error,
        )

    def upload(
        self,
        content: bytes | str,
        file_name: str,
        bank_format: str = "auto",
        *,
        column_mapping: Mapping[str, str | None] | None = None,
        date_format: str | None = None,
    ) -> ImportPreview:
        """Parse ``content`` and hold the result for preview.

        An unparseable file leaves the session in ``error`` and returns a
        preview with ``success`` false. A bad ``column_mapping`` raises
        :class:`~bookkeeping.errors.InvalidMapping` and returns the session
        to ``idle``.
        """

        self._require(ImportState.IDLE, ImportState.SUCCESS, ImportState.ERROR, action="upload")
        self._state = ImportState.UPLOADING
        self._batch = None
        try:
            result = normalize_statement(
                content,
                bank_format,
                file_name=file_name,
                column_mapping=column_mapping,
                date_format=date_format,
            )
        except ValueError:
            self._state = ImportState.IDLE
            raise
        except Exception:
            self._state = ImportState.ERROR
            _logger.exception("import:upload_crashed file=%s", file_name)
            raise

        if not result.success:
            self._state = ImportState.ERROR
            _logger.warning("import:upload_failed file=%s error=%s", file_name, result.error)
            return self._preview(result, file_name)

        self._content = content
        self._batch = ImportBatch(
            id=new_id(),
            file_name=file_name,
            bank_format=result.detected_bank or bank_format,
            bank_name=result.detected_bank_name,
            parsed_count=result.parsed_count,
            transactions=list(result.transactions),
            errors=list(result.errors),
        )
        self._batch.transition(ImportStatus.PREVIEWED)
        self._state = ImportState.PREVIEW
        _logger.info(
            "import:preview file=%s bank=%s parsed=%d errors=%d requires_mapping=%s",
            file_name,
            result.detected_bank,
            result.parsed_count,
            len(result.errors),
            result.requires_mapping,
        )
        return self._preview(result, file_name)

    def remap(
        self,
        column_mapping: Mapping[str, str | None],
        *,
        date_format: str | None = None,
    ) -> ImportPreview:
        """Re-parse the held upload with a user-confirmed column mapping."""

        self._require(ImportState.PREVIEW, action="remap")
        batch, content = self._held("remap")
        result = normalize_statement(
            content,
            "auto",
            file_name=batch.file_name,
            column_mapping=column_mapping,
            date_format=date_format,
        )
        batch.transactions = list(result.transactions)
        batch.errors = list(result.errors)
        batch.parsed_count = result.parsed_count
        batch.bank_format = result.detected_bank or "custom"
        batch.bank_name = result.detected_bank_name
        batch.transition(ImportStatus.PREVIEWED)
        _logger.info(
            "import:remap file=%s parsed=%d errors=%d",
            batch.file_name,
            result.parsed_count,
            len(result.errors),
        )
        return self._preview(result, batch.file_name)

    def cancel(self) -> None:
        """Drop the held upload; nothing has been written."""

        self._require(ImportState.PREVIEW, action="cancel")
        batch, _ = self._held("cancel")
        batch.transition(ImportStatus.CANCELLED)
        _logger.info("import:cancelled batch_id=%s", batch.id)
        self._batch = None
        self._content = None
        self._state = ImportState.IDLE

    def confirm(
        self,
        *,
        company_id: str | None = None,
        skip_duplicates: bool = True,
        rules: Iterable[ClassificationRule] | RuleSnapshot | None = None,
    ) -> ImportSummary:
        """Write the previewed rows and classify them with Tier 1.

        Raises
        ------
        ImportStateError
            No previewed upload is held.
        Exception
            Database errors propagate unchanged; the session is left in
            ``error`` and the batch stays pending.
        """

        self._require(ImportState.PREVIEW, ImportState.ERROR, action="confirm")
        batch = self._batch
        if batch is None or batch.status is not ImportStatus.PREVIEWED:
            raise ImportStateError("cannot confirm: no previewed upload is held")

        snapshot = rules if isinstance(rules, RuleSnapshot) else RuleSnapshot.of(rules)
        with import_context(batch.id, company_id):
            return self._write(
                batch, company_id=company_id, skip_duplicates=skip_duplicates, snapshot=snapshot
            )

    def _write(
        self,
        batch: ImportBatch,
        *,
        company_id: str | None,
        skip_duplicates: bool,
        snapshot: RuleSnapshot,
    ) -> ImportSummary:
        self._state = ImportState.IMPORTING
        rows = [
            replace(tx, company_id=company_id, source_upload_id=batch.id)
            for tx in batch.transactions
        ]
        try:
            with self._store.transaction() as s:
                if skip_duplicates:
                    partition = find_duplicates(self._store, rows, company_id=company_id, session=s)
                    unique, duplicates = partition.unique, partition.duplicates
                else:
                    unique, duplicates = rows, []
                classified = classify_transactions(unique, snapshot)
                date_range = _date_range(classified)
                self._store.record_import_batch(
                    batch,
                    company_id=company_id,
                    imported_count=len(classified),
                    duplicate_count=len(duplicates),
                    date_range=date_range,
                    session=s,
                )
                saved = self._store.create_many(classified, session=s)
        except Exception:
            self._state = ImportState.ERROR
            _logger.exception("import:confirm_failed batch_id=%s", batch.id)
            raise

        batch.transition(ImportStatus.CONFIRMED)
        self._state = ImportState.SUCCESS
        pending = [tx for tx in saved if needs_ai_review(tx)]
        summary = ImportSummary(
            batch_id=batch.id,
            imported=len(saved),
            duplicates=len(duplicates),
            classified=len(saved) - len(pending),
            unclassified=len(pending),
            unclassified_transactions=pending,
            errors=[dict(e) for e in batch.errors],
            date_range=date_range,
        )
        _logger.info(
            "import:confirmed batch_id=%s imported=%d duplicates=%d classified=%d unclassified=%d",
            batch.id,
            summary.imported,
            summary.duplicates,
            summary.classified,
            summary.unclassified,
        )
        return summary


def classify_unclassified(
    store: TransactionStore,
    transactions: Sequence[Transaction],
    *,
    user_id: str | None = None,
    usage_sink: UsageSink | None = None,
    **ai_options: Any,
) -> list[Transaction]:
    """Run Tier 2 on stored rows and save the merged results.

    Rows the model could not classify stay flagged for review.
    """

    if not transactions:
        return []
    response = classify_with_ai(
        transactions, user_id=user_id, usage_sink=usage_sink, **ai_options
    )
    merged = merge_ai_results(transactions, response)
    with store.transaction() as s:
        for tx in merged:
            store.update(tx, session=s)
    return merged


__all__ = [
    "ImportPreview",
    "ImportSession",
    "ImportState",
    "ImportSummary",
    "classify_unclassified",
]
