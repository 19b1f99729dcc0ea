# ruff: noqa: I001
"""CLI for the ``bookkeeping`` package.

A Typer console interface over the import, rules and split operations.
Environment variables (``DATABASE_URL``, ``OPENAI_API_KEY``,
``BOOKKEEPING_*``) are loaded from a local ``.env`` with ``python-dotenv``
before any command runs. Business logic lives in the library modules; the
handlers here only parse options, call them and print results.
"""

from __future__ import annotations

import json
import sys
import uuid
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from typer.models import ArgumentInfo

from .errors import BookkeepingError
from .logging_setup import configure_logging


# ---- Small module-level helpers ---------------------------------------------


def _fail(message: str) -> typer.Exit:
    print(f"Error: {message}", file=sys.stderr)
    return typer.Exit(1)


def _read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        raise _fail(f"File not found: {path}") from None
    except PermissionError:
        raise _fail(f"Permission denied: {path}") from None


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _store(database_url: str | None):
    from .persistence import TransactionStore

    return TransactionStore(database_url=database_url)


def _parse_part(raw: str) -> dict[str, Any]:
    """``AMOUNT:CATEGORY[:DESCRIPTION]`` to a split part mapping."""

    from .currency import parse_currency_string

    amount, sep, rest = raw.partition(":")
    if not sep:
        raise _fail(f"Invalid --part {raw!r}; expected AMOUNT:CATEGORY")
    category, _, description = rest.partition(":")
    return {
        "amount": parse_currency_string(amount),
        "category": category.strip(),
        "description": description.strip() or None,
    }


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank statements (CSV or Chase PDF), classify transactions and "
        "manage splits. Loads DATABASE_URL and OPENAI_API_KEY from a local .env."
    ),
)
rules_app = typer.Typer(no_args_is_help=True, help="Manage keyword classification rules.")
imports_app = typer.Typer(no_args_is_help=True, help="List or delete past imports.")
app.add_typer(rules_app, name="rules")
app.add_typer(imports_app, name="imports")

# Module-level argument object to satisfy ruff B008 (no calls in parameter
# defaults).
STATEMENT_PATH_ARG: ArgumentInfo = typer.Argument(
    ...,
    help="Path to a bank statement (CSV export or PDF statement).",
    dir_okay=False,
    file_okay=True,
)


@app.command("banks")
def banks_cmd() -> None:
    """List the supported bank formats."""

    from .normalizers import get_supported_banks

    for bank in get_supported_banks():
        typer.echo(f"{bank['key']}\t{bank['name']}")


@app.command("preview")
def preview_cmd(
    path: Annotated[Path, STATEMENT_PATH_ARG],
    *,
    bank: str = typer.Option("auto", help="Bank format key, or 'auto' to detect."),
    sample: int = typer.Option(10, min=0, help="Number of parsed rows to show."),
) -> None:
    """Parse a statement and print the detection report without saving."""

    from .normalizers import normalize_statement, summarize_transactions

    content = _read_file(path)
    try:
        result = normalize_statement(content, bank, file_name=path.name)
    except ValueError as e:
        raise _fail(str(e)) from None
    if not result.success:
        raise _fail(result.error or "statement could not be parsed")

    _echo_json(
        {
            **result.detection_report(),
            "parsedCount": result.parsed_count,
            "totals": summarize_transactions(result.transactions),
            "errors": result.errors,
            "sample": [tx.as_dict() for tx in result.transactions[:sample]],
        }
    )


@app.command("import-statement")
def import_statement_cmd(
    path: Annotated[Path, STATEMENT_PATH_ARG],
    *,
    bank: str = typer.Option("auto", help="Bank format key, or 'auto' to detect."),
    company: str | None = typer.Option(None, "--company", help="Company id to import into."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    skip_duplicates: bool = typer.Option(
        True, help="Skip rows matching stored transactions (date, amount, description)."
    ),
    ai: bool = typer.Option(
        False, "--ai", help="Send unclassified rows to the AI classifier after import."
    ),
    user_id: str | None = typer.Option(None, help="Rule owner and AI usage user id."),
) -> None:
    """Import a statement: preview, dedup, save and classify."""

    import os

    from .importer import ImportSession, classify_unclassified

    content = _read_file(path)
    store = _store(database_url)
    session = ImportSession(store)
    try:
        preview = session.upload(content, path.name, bank)
    except ValueError as e:
        raise _fail(str(e)) from None
    if not preview.success:
        raise _fail(preview.error or "statement could not be parsed")
    if preview.requires_mapping:
        typer.echo(
            "Warning: bank format not recognized; columns were guessed "
            f"from headers {preview.headers}",
            err=True,
        )

    rules = store.list_rules(user_id=user_id, active_only=True)
    summary = session.confirm(company_id=company, skip_duplicates=skip_duplicates, rules=rules)
    payload = summary.to_dict()

    if ai and summary.unclassified_transactions:
        if not os.getenv("OPENAI_API_KEY"):
            raise _fail("OPENAI_API_KEY is not set in the environment.")
        merged = classify_unclassified(
            store,
            summary.unclassified_transactions,
            user_id=user_id,
            usage_sink=store.record_usage,
        )
        payload["aiClassified"] = sum(1 for tx in merged if not tx.needs_review)
        payload["stillNeedsReview"] = sum(1 for tx in merged if tx.needs_review)

    _echo_json(payload)


# ---- Rules -------------------------------------------------------------------


@rules_app.command("add")
def rules_add_cmd(
    *,
    keyword: list[str] = typer.Option(..., "--keyword", "-k", help="Keyword (repeatable)."),
    category: str = typer.Option(..., help="Category key or label."),
    priority: int = typer.Option(0, help="Higher priority wins on overlapping matches."),
    subcategory: str | None = typer.Option(None),
    user_id: str | None = typer.Option(None),
    database_url: str | None = typer.Option(None),
) -> None:
    from .models import ClassificationRule

    try:
        rule = ClassificationRule(
            id=str(uuid.uuid4()),
            keywords=tuple(keyword),
            category=category,
            priority=priority,
            subcategory=subcategory,
        )
    except BookkeepingError as e:
        raise _fail(str(e)) from None
    _store(database_url).create_rule(rule, user_id=user_id)
    typer.echo(rule.id)


@rules_app.command("list")
def rules_list_cmd(
    *,
    user_id: str | None = typer.Option(None),
    database_url: str | None = typer.Option(None),
) -> None:
    for rule in _store(database_url).list_rules(user_id=user_id):
        state = "active" if rule.is_active else "inactive"
        typer.echo(
            f"{rule.id}\t{rule.priority}\t{rule.category.name}\t{state}\t"
            + ",".join(rule.keywords)
        )


@rules_app.command("delete")
def rules_delete_cmd(
    rule_id: str,
    *,
    database_url: str | None = typer.Option(None),
) -> None:
    if not _store(database_url).delete_rule(rule_id):
        raise _fail(f"Rule not found: {rule_id}")


# ---- Imports -----------------------------------------------------------------


@imports_app.command("list")
def imports_list_cmd(
    *,
    company: str | None = typer.Option(None, "--company"),
    database_url: str | None = typer.Option(None),
) -> None:
    _echo_json(_store(database_url).list_import_batches(company_id=company))


@imports_app.command("delete")
def imports_delete_cmd(
    batch_id: str,
    *,
    with_transactions: bool = typer.Option(
        False, help="Also delete the transactions created by this import."
    ),
    database_url: str | None = typer.Option(None),
) -> None:
    removed = _store(database_url).delete_import_batch(
        batch_id, delete_transactions=with_transactions
    )
    typer.echo(f"Deleted import {batch_id} ({removed} transactions removed)")


# ---- Splits ------------------------------------------------------------------


@app.command("split")
def split_cmd(
    transaction_id: str,
    *,
    part: list[str] = typer.Option(
        ..., "--part", "-p", help="AMOUNT:CATEGORY[:DESCRIPTION] (repeatable)."
    ),
    database_url: str | None = typer.Option(None),
) -> None:
    """Split a stored transaction into category-tagged parts."""

    from .splits import split_transaction

    parts = [_parse_part(p) for p in part]
    try:
        result = split_transaction(_store(database_url), transaction_id, parts)
    except BookkeepingError as e:
        raise _fail(str(e)) from None
    _echo_json(
        {
            "original": result.original.as_dict(),
            "parts": [p.as_dict() for p in result.parts],
            "remainder": f"{result.remainder:.2f}",
        }
    )


@app.command("unsplit")
def unsplit_cmd(
    transaction_id: str,
    *,
    database_url: str | None = typer.Option(None),
) -> None:
    """Remove the parts of a split transaction."""

    from .splits import unsplit_transaction

    try:
        restored = unsplit_transaction(_store(database_url), transaction_id)
    except BookkeepingError as e:
        raise _fail(str(e)) from None
    _echo_json(restored.as_dict())


@app.callback()
def _root() -> None:
    """Load ``.env`` from the current directory and configure logging."""

    # override=False keeps variables already set in the environment
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
