"""Tier 2 classification: batched calls to the OpenAI Responses API.

Public API:
    - :func:`classify_with_ai`
    - :class:`AiResult`, :class:`AiClassificationResponse`

Batches run strictly one after another with a fixed pause between them to
stay under the provider's request rate; there is no pause after the final
batch. A batch that fails (after retries on 429/5xx) does not abort the job:
its transactions come back unclassified with ``confidence=0`` and the failure
message in ``reasoning``.

No side effects occur at import time (no client creation, no environment
reads).
"""

from __future__ import annotations

import os
import random
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from openai import OpenAI

from . import prompting
from .categories import CATEGORY_SET_VERSION, Category
from .categorization import AiDecision, extract_json_array, parse_decisions
from .logging_setup import get_logger
from .models import Transaction

# ---- Tunables (private) ------------------------------------------------------

_BATCH_SIZE_DEFAULT: int = 200
_DELAY_SEC_DEFAULT: float = 4.0
_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (1.0, 4.0)
_JITTER_PCT: float = 0.20
_MODEL_DEFAULT: str = "gpt-5-mini"

_logger = get_logger("bookkeeping.categorize")

UsageSink: TypeAlias = Callable[[Mapping[str, Any]], None]


# ---- Result types ------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AiResult:
    id: str
    category: Category | None
    subcategory: str | None = None
    vendor: str | None = None
    confidence: float = 0.0
    reasoning: str | None = None

    @property
    def needs_review(self) -> bool:
        return self.category is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.name if self.category else None,
            "subcategory": self.subcategory,
            "vendor": self.vendor,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }


@dataclass(slots=True)
class AiClassificationResponse:
    """Job outcome. ``results`` follow the input order, one per transaction."""

    success: bool
    results: list[AiResult] = field(default_factory=list)
    error: str | None = None
    batches: int = 0
    failed_batches: int = 0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def classified(self) -> int:
        return sum(1 for r in self.results if r.category is not None)

    @property
    def failed(self) -> int:
        return self.total - self.classified

    def by_id(self) -> dict[str, AiResult]:
        return {r.id: r for r in self.results}

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "results": [r.to_dict() for r in self.results],
            "stats": {
                "total": self.total,
                "classified": self.classified,
                "failed": self.failed,
            },
        }


# ---- Internal helpers --------------------------------------------------------


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        _logger.warning("config:invalid %s=%r; using %d", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        _logger.warning("config:invalid %s=%r; using %s", name, raw, default)
        return default


def _create_client() -> OpenAI:
    return OpenAI()


def _response_text(resp: Any) -> str | None:
    text = getattr(resp, "output_text", None)
    if isinstance(text, str) and text:
        return text
    output = getattr(resp, "output", None)
    if not output:
        return None
    content = getattr(output[0], "content", None)
    if not content:
        return None
    txt = getattr(content[0], "text", None)
    return txt if isinstance(txt, str) else None


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for HTTP 429 and 5xx errors."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    base = _BACKOFF_SCHEDULE_SEC[min(attempt_no - 1, len(_BACKOFF_SCHEDULE_SEC) - 1)]
    jitter = base * _JITTER_PCT
    time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))


def _batch_ids(transactions: Sequence[Transaction]) -> list[str]:
    """Stable request ids: the transaction id, else its position."""

    ids: list[str] = []
    seen: set[str] = set()
    for i, tx in enumerate(transactions):
        tx_id = str(tx.id) if tx.id else f"row-{i}"
        if tx_id in seen:
            tx_id = f"{tx_id}#{i}"
        seen.add(tx_id)
        ids.append(tx_id)
    return ids


def _classify_batch(
    client: Any,
    batch_index: int,
    *,
    ids: list[str],
    transactions: Sequence[Transaction],
    model: str,
    instructions: str,
) -> dict[str, AiDecision]:
    lines = [
        prompting.format_transaction_line(tx, tx_id)
        for tx, tx_id in zip(transactions, ids, strict=True)
    ]
    user_content = prompting.build_user_content(lines)
    _logger.info(
        "tier2:batch_start batch_index=%d num_transactions=%d",
        batch_index,
        len(ids),
    )

    attempt = 1
    while True:
        t0 = time.perf_counter()
        try:
            resp = client.responses.create(
                model=model,
                instructions=instructions,
                input=user_content,
            )
            items = extract_json_array(_response_text(resp))
            decisions = parse_decisions(items, allowed_ids=ids)
            _logger.info(
                "tier2:batch_done batch_index=%d returned=%d latency_ms=%.2f",
                batch_index,
                len(decisions),
                (time.perf_counter() - t0) * 1000.0,
            )
            return decisions
        except Exception as e:  # noqa: BLE001
            dt_ms = (time.perf_counter() - t0) * 1000.0
            if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                _logger.error(
                    "tier2:batch_failed batch_index=%d latency_ms=%.2f error=%s",
                    batch_index,
                    dt_ms,
                    e.__class__.__name__,
                )
                if isinstance(e, ValueError):
                    # Unparseable output is terminal (no retries)
                    raise
                raise RuntimeError(str(e) or e.__class__.__name__) from e
            _logger.warning(
                "tier2:batch_retry batch_index=%d latency_ms=%.2f error=%s attempt=%d",
                batch_index,
                dt_ms,
                e.__class__.__name__,
                attempt,
            )
            _sleep_backoff(attempt)
            attempt += 1


def _failed_results(ids: Sequence[str], message: str) -> list[AiResult]:
    return [
        AiResult(id=i, category=None, confidence=0.0, reasoning=f"Classification failed: {message}")
        for i in ids
    ]


def _log_usage(sink: UsageSink, record: Mapping[str, Any]) -> None:
    try:
        sink(record)
    except Exception as e:  # noqa: BLE001
        _logger.warning("tier2:usage_log_failed error=%s", e)


# ---- Public API --------------------------------------------------------------


def classify_with_ai(
    transactions: Sequence[Transaction],
    *,
    user_id: str | None = None,
    batch_size: int | None = None,
    delay_seconds: float | None = None,
    model: str | None = None,
    client: Any | None = None,
    usage_sink: UsageSink | None = None,
) -> AiClassificationResponse:
    """Classify transactions with the model in sequential batches.

    Parameters
    ----------
    transactions:
        Canonical transactions, usually the ones Tier 1 left for review.
    user_id:
        Recorded with the usage log entry.
    batch_size:
        Transactions per request (``BOOKKEEPING_AI_BATCH_SIZE``, default 200).
    delay_seconds:
        Pause between consecutive batches (``BOOKKEEPING_AI_DELAY_SEC``,
        default 4).
    model:
        Responses API model (``BOOKKEEPING_AI_MODEL``).
    client:
        An ``openai.OpenAI``-compatible client; created on first use when
        omitted.
    usage_sink:
        Called once with a usage record on a background thread after the job.
        Failures are logged and never reach the caller.

    Returns
    -------
    AiClassificationResponse
        ``success=False`` only when no transactions were given; per-batch
        failures are reported inside ``results``.
    """

    txs = list(transactions)
    if not txs:
        return AiClassificationResponse(success=False, error="No transactions provided")

    size = batch_size if batch_size is not None else _env_int(
        "BOOKKEEPING_AI_BATCH_SIZE", _BATCH_SIZE_DEFAULT
    )
    if not isinstance(size, int) or size <= 0:
        raise ValueError("batch_size must be a positive integer")
    delay = delay_seconds if delay_seconds is not None else _env_float(
        "BOOKKEEPING_AI_DELAY_SEC", _DELAY_SEC_DEFAULT
    )
    model_name = model or os.getenv("BOOKKEEPING_AI_MODEL") or _MODEL_DEFAULT

    ids = _batch_ids(txs)
    instructions = prompting.build_system_instructions()
    api = client if client is not None else _create_client()

    response = AiClassificationResponse(success=True)
    starts = list(range(0, len(txs), size))
    for batch_index, start in enumerate(starts):
        batch_ids = ids[start : start + size]
        batch_txs = txs[start : start + size]
        try:
            decisions = _classify_batch(
                api,
                batch_index,
                ids=batch_ids,
                transactions=batch_txs,
                model=model_name,
                instructions=instructions,
            )
        except (RuntimeError, ValueError) as e:
            response.failed_batches += 1
            response.results.extend(_failed_results(batch_ids, str(e)))
        else:
            for tx_id in batch_ids:
                d = decisions.get(tx_id)
                if d is None:
                    response.results.append(
                        AiResult(id=tx_id, category=None, reasoning="No classification returned")
                    )
                    continue
                response.results.append(
                    AiResult(
                        id=tx_id,
                        category=d.category,
                        subcategory=d.subcategory,
                        vendor=d.vendor,
                        confidence=d.confidence if d.category is not None else 0.0,
                        reasoning=d.reasoning,
                    )
                )
        response.batches += 1
        if batch_index < len(starts) - 1 and delay > 0:
            time.sleep(delay)

    _logger.info(
        "tier2:done total=%d classified=%d failed=%d batches=%d failed_batches=%d",
        response.total,
        response.classified,
        response.failed,
        response.batches,
        response.failed_batches,
    )

    if usage_sink is not None:
        record = {
            "user_id": user_id,
            "transaction_count": response.total,
            "success_count": response.classified,
            "model": model_name,
            "category_set_version": CATEGORY_SET_VERSION,
        }
        threading.Thread(
            target=_log_usage,
            args=(usage_sink, record),
            name="bookkeeping-usage-log",
            daemon=True,
        ).start()
    return response


__all__ = ["AiClassificationResponse", "AiResult", "UsageSink", "classify_with_ai"]
