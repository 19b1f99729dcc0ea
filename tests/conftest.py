"""Pytest configuration for test isolation.

The database client keeps one engine per process, and the AI classifier reads
its batch size, delay and model from ``BOOKKEEPING_AI_*`` variables. Either can
leak between tests, so an autouse fixture disposes the shared engine after
each test and clears the environment the pipeline reads.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make the workspace packages importable without an editable install
_ROOT = Path(__file__).resolve().parents[1]
for _p in (_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT):
    if str(_p) not in sys.path:
        sys.path.insert(0, str(_p))

from db.client import reset_engine  # noqa: E402

_ENV_VARS = (
    "DATABASE_URL",
    "BOOKKEEPING_AI_BATCH_SIZE",
    "BOOKKEEPING_AI_DELAY_SEC",
    "BOOKKEEPING_AI_MODEL",
    "BOOKKEEPING_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env_and_engine(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_engine()
    yield
    reset_engine()
