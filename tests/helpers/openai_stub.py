"""Test helpers to stub the OpenAI Responses client used by categorize.py.

The stub parses the pipe-delimited transaction lines out of the user content
and returns a JSON array of decision objects. Tests provide a ``decide``
callable mapping each parsed line to ``(category, confidence, reasoning)``;
returning ``None`` omits that transaction from the reply.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

HEADER = "TRANSACTIONS (id|description|amount|type):\n"


def parse_transaction_lines(user_content: str) -> list[dict[str, str]]:
    b = user_content.find(HEADER)
    if b == -1:
        raise AssertionError("categorize: user content missing transaction header")
    items = []
    for line in user_content[b + len(HEADER) :].splitlines():
        tx_id, description, amount, tx_type = line.split("|")
        items.append({"id": tx_id, "description": description, "amount": amount, "type": tx_type})
    return items


class StatusError(Exception):
    """Exception carrying an HTTP ``status_code`` like the OpenAI SDK errors."""

    def __init__(self, status_code: int, message: str = "stub failure") -> None:
        super().__init__(message)
        self.status_code = status_code


class OpenAIStub:
    """Minimal stub matching the ``openai.OpenAI`` shape for ``categorize.py``.

    Parameters
    ----------
    decide:
        Receives a parsed line mapping and returns ``(category, confidence,
        reasoning)`` or ``None``.
    fail_calls:
        Mapping of zero-based call index to the exception that call raises.
    raw_text:
        When set, every call returns this text verbatim instead of JSON built
        from ``decide``.
    """

    def __init__(
        self,
        decide: Callable[[dict[str, str]], tuple[str, float, str] | None] | None = None,
        *,
        fail_calls: dict[int, Exception] | None = None,
        raw_text: str | None = None,
    ) -> None:
        self._decide = decide or (lambda item: ("OTHER_EXPENSES", 0.9, "stub"))
        self._fail_calls = dict(fail_calls or {})
        self._raw_text = raw_text
        self.calls: list[dict[str, Any]] = []

        class _Responses:
            def __init__(self, outer: OpenAIStub) -> None:
                self._outer = outer

            def create(self, **kwargs):
                outer = self._outer
                index = len(outer.calls)
                outer.calls.append(kwargs)
                if index in outer._fail_calls:
                    raise outer._fail_calls[index]

                class _Resp:
                    output_text: str

                resp = _Resp()
                if outer._raw_text is not None:
                    resp.output_text = outer._raw_text
                    return resp
                results = []
                for item in parse_transaction_lines(kwargs["input"]):
                    decision = outer._decide(item)
                    if decision is None:
                        continue
                    cat, confidence, reasoning = decision
                    results.append(
                        {
                            "id": item["id"],
                            "category": cat,
                            "subcategory": None,
                            "vendor": item["description"].split()[0],
                            "confidence": confidence,
                            "reasoning": reasoning,
                        }
                    )
                resp.output_text = json.dumps(results)
                return resp

        self.responses = _Responses(self)
