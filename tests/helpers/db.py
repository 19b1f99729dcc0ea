"""DB helpers for tests: bootstrap a temporary SQLite DB with the bookkeeping schema."""

from __future__ import annotations

import os
from pathlib import Path

from db import Base
from db.client import get_engine, session_scope
from sqlalchemy import text as sql_text

from bookkeeping.persistence import TransactionStore


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)
    Base.metadata.create_all(bind=engine)
    _assert_foreign_keys_enabled(url)

    if set_default_env:
        os.environ.setdefault("DATABASE_URL", url)
    return url


def make_store(db_file: Path) -> TransactionStore:
    return TransactionStore(database_url=bootstrap_sqlite_db(db_file))


def _assert_foreign_keys_enabled(database_url: str) -> None:
    """Split parts rely on ON DELETE CASCADE, which SQLite only honors with FKs on."""

    with session_scope(database_url=database_url) as session:
        enabled = session.execute(sql_text("PRAGMA foreign_keys")).scalar_one()
    assert enabled == 1, "SQLite foreign keys are not enabled on the shared engine"
