"""Logging for the ``bookkeeping`` package.

Entrypoints call :func:`configure_logging` once; library modules only call
:func:`get_logger` and emit single-line ``phase:event key=value`` messages
(``"import:confirmed batch_id=%s imported=%d"``).

Every line written by the package handler carries the import it belongs to.
:func:`import_context` binds a batch id and company for the duration of an
upload or confirm, and the handler renders them as ``[batch=... company=...]``
(``[-]`` outside an import). The binding lives in a ``ContextVar``, so worker
threads such as the AI usage logger start unbound.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import IO

_PKG_LOGGER_NAME = "bookkeeping"
_LEVEL_ENV = "BOOKKEEPING_LOG_LEVEL"
_DEFAULT_FMT = "%(asctime)s %(levelname)s %(name)s %(import_ctx)s %(message)s"
# HTTP client loggers used by the AI tier
_NOISY_LOGGERS = ("openai", "httpx", "httpcore")
_CONFIGURED = False

_import_ctx: ContextVar[tuple[str | None, str | None]] = ContextVar(
    "bookkeeping_import_ctx", default=(None, None)
)


class ImportContextFilter(logging.Filter):
    """Stamp ``record.import_ctx`` from the bound import, never dropping records."""

    def filter(self, record: logging.LogRecord) -> bool:
        batch_id, company_id = _import_ctx.get()
        if batch_id is None and company_id is None:
            record.import_ctx = "[-]"
        else:
            record.import_ctx = f"[batch={batch_id or '-'} company={company_id or '-'}]"
        return True


@contextmanager
def import_context(batch_id: str | None, company_id: str | None = None) -> Iterator[None]:
    token = _import_ctx.set((batch_id, company_id))
    try:
        yield
    finally:
        _import_ctx.reset(token)


def current_import_context() -> tuple[str | None, str | None]:
    return _import_ctx.get()


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    raw = level if isinstance(level, str) and level.strip() else os.getenv(_LEVEL_ENV, "")
    name = raw.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelName(name) if name else None
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach the package handler once.

    ``level`` may be an int or a level name; ``None`` reads
    ``BOOKKEEPING_LOG_LEVEL`` and falls back to ``INFO``. Unknown names also
    resolve to ``INFO``. The OpenAI/httpx loggers are held at ``WARNING``
    unless the resolved level is ``DEBUG``.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved = _parse_level(level)
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.addFilter(ImportContextFilter())
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FMT))
    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    client_level = logging.DEBUG if resolved <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(client_level)

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return ``bookkeeping.<name>``; a bare module name is prefixed."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    if name != _PKG_LOGGER_NAME and not name.startswith(_PKG_LOGGER_NAME + "."):
        name = f"{_PKG_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


__all__ = [
    "ImportContextFilter",
    "configure_logging",
    "current_import_context",
    "get_logger",
    "import_context",
]
