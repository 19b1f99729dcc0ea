"""Parsing and validation of Tier 2 model output.

The model is asked for a bare JSON array but replies are not always clean:
they may arrive wrapped in markdown fences or cut off mid-element when the
output token limit is hit. :func:`extract_json_array` undoes both before
pydantic validates each element against the closed category vocabulary.
"""

from __future__ import annotations

import json
from collections.abc import Collection
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator

from .categories import Category, parse_category
from .logging_setup import get_logger

_logger = get_logger("bookkeeping.categorization")


# ---------------------------------------------------------------------------
# Raw text cleanup
# ---------------------------------------------------------------------------


def strip_code_fences(text: str) -> str:
    s = text.strip()
    if s.startswith("```json"):
        s = s[len("```json") :]
    elif s.startswith("```"):
        s = s[3:]
    if s.endswith("```"):
        s = s[:-3]
    return s.strip()


def recover_truncated_array(text: str) -> str | None:
    """Close a JSON array cut off mid-element.

    Tries the text up to the last ``}`` first, so a reply cut right after a
    complete element keeps it, then falls back to the last ``},`` boundary.
    Returns ``None`` when no complete element precedes the cut.
    """

    start = text.find("[")
    if start < 0:
        return None
    for cut in (text.rfind("}"), text.rfind("},")):
        if cut < start:
            continue
        candidate = text[start : cut + 1] + "]"
        try:
            json.loads(candidate)
        except json.JSONDecodeError:
            continue
        return candidate
    return None


def extract_json_array(text: str | None) -> list[Any]:
    """Decode the model reply into a list, recovering from truncation.

    Raises
    ------
    ValueError
        When the reply is empty, not an array, or unrecoverable.
    """

    if not text or not text.strip():
        raise ValueError("Empty response from model")
    s = strip_code_fences(text)
    try:
        decoded = json.loads(s)
    except json.JSONDecodeError as e:
        recovered = recover_truncated_array(s)
        if recovered is None:
            raise ValueError("Failed to parse AI classification response") from e
        try:
            decoded = json.loads(recovered)
        except json.JSONDecodeError as e2:
            raise ValueError("Failed to parse AI classification response") from e2
        _logger.warning(
            "tier2:truncated_response recovered_items=%d",
            len(decoded) if isinstance(decoded, list) else 0,
        )
    if isinstance(decoded, dict) and isinstance(decoded.get("results"), list):
        decoded = decoded["results"]
    if not isinstance(decoded, list):
        raise ValueError("AI classification response was not a JSON array")
    return decoded


# ---------------------------------------------------------------------------
# Element validation
# ---------------------------------------------------------------------------


class AiDecision(BaseModel):
    """One validated classification from the model.

    Validation context keys:
      - ``allowed_ids``: ids sent in the batch; anything else is rejected
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str
    category: Category | None = None
    subcategory: str | None = None
    vendor: str | None = None
    confidence: float = 0.5
    reasoning: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_in_batch(cls, v: Any, info: ValidationInfo) -> str:
        if v is None:
            raise ValueError("id is required")
        s = str(v).strip()
        allowed = info.context.get("allowed_ids") if info.context else None
        if allowed is not None and s not in allowed:
            raise ValueError(f"id not in batch: {s!r}")
        return s

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, v: Any) -> Category | None:
        # Unknown categories are dropped to None rather than rejected
        return parse_category(v)

    @field_validator("subcategory", "vendor", "reasoning", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> str | None:
        if v is None:
            return None
        s = str(v).strip()
        return s or None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        try:
            f = float(v)
        except (TypeError, ValueError):
            return 0.5
        if f != f:  # NaN
            return 0.5
        return min(max(f, 0.0), 1.0)


def parse_decisions(items: list[Any], *, allowed_ids: Collection[str]) -> dict[str, AiDecision]:
    """Validate raw elements, keyed by id; invalid elements are logged and dropped.

    A repeated id keeps its first occurrence.
    """

    allowed = set(allowed_ids)
    out: dict[str, AiDecision] = {}
    dropped = 0
    for item in items:
        try:
            decision = AiDecision.model_validate(item, context={"allowed_ids": allowed})
        except ValidationError:
            dropped += 1
            continue
        out.setdefault(decision.id, decision)
    if dropped:
        _logger.warning("tier2:dropped_items count=%d", dropped)
    return out


__all__ = [
    "AiDecision",
    "extract_json_array",
    "parse_decisions",
    "recover_truncated_array",
    "strip_code_fences",
]
