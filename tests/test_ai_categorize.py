import threading
from decimal import Decimal

import pytest

import bookkeeping.categorize as categorize_mod
from bookkeeping.categories import Category
from bookkeeping.categorization import extract_json_array
from bookkeeping.categorize import classify_with_ai
from bookkeeping.models import Transaction, TransactionType
from tests.helpers.openai_stub import OpenAIStub, StatusError, parse_transaction_lines


def _txs(n: int) -> list[Transaction]:
    return [
        Transaction(
            id=f"t{i}",
            date="2024-01-01",
            description=f"VENDOR{i} PURCHASE",
            amount=Decimal("-10.00") - i,
            type=TransactionType.EXPENSE,
        )
        for i in range(n)
    ]


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr(categorize_mod.time, "sleep", lambda s: recorded.append(s))
    # Keep retry backoff deterministic
    monkeypatch.setattr(categorize_mod.random, "uniform", lambda a, b: 0.0)
    return recorded


def test_batches_run_in_order_with_delay_only_between_batches(sleeps):
    stub = OpenAIStub()
    resp = classify_with_ai(_txs(5), batch_size=2, delay_seconds=1.5, client=stub)

    assert resp.success
    assert resp.batches == 3
    assert len(stub.calls) == 3
    assert sleeps == [1.5, 1.5]
    assert [r.id for r in resp.results] == ["t0", "t1", "t2", "t3", "t4"]
    assert all(r.category is Category.OTHER_EXPENSES for r in resp.results)
    assert resp.to_dict()["stats"] == {"total": 5, "classified": 5, "failed": 0}


def test_single_batch_does_not_sleep(sleeps):
    classify_with_ai(_txs(3), client=OpenAIStub())
    assert sleeps == []


def test_environment_configures_batching_and_model(monkeypatch, sleeps):
    monkeypatch.setenv("BOOKKEEPING_AI_BATCH_SIZE", "2")
    monkeypatch.setenv("BOOKKEEPING_AI_DELAY_SEC", "0.25")
    monkeypatch.setenv("BOOKKEEPING_AI_MODEL", "gpt-test")
    stub = OpenAIStub()

    classify_with_ai(_txs(3), client=stub)

    assert [c["model"] for c in stub.calls] == ["gpt-test", "gpt-test"]
    assert sleeps == [0.25]


def test_client_is_created_lazily(monkeypatch, sleeps):
    created: list[OpenAIStub] = []

    def factory():
        created.append(OpenAIStub())
        return created[-1]

    monkeypatch.setattr(categorize_mod, "OpenAI", factory)
    resp = classify_with_ai(_txs(1))

    assert len(created) == 1
    assert resp.classified == 1


def test_prompt_lines_carry_id_absolute_amount_and_type(sleeps):
    stub = OpenAIStub()
    tx = Transaction(
        id=None,
        date="2024-01-06",
        description="STAPLES | 00123",
        amount=Decimal("-45.20"),
        type=TransactionType.EXPENSE,
    )
    resp = classify_with_ai([tx], client=stub)

    call = stub.calls[0]
    assert parse_transaction_lines(call["input"]) == [
        {"id": "row-0", "description": "STAPLES / 00123", "amount": "45.20", "type": "expense"}
    ]
    assert "OFFICE_EXPENSES" in call["instructions"]
    assert resp.results[0].id == "row-0"


def test_failed_batch_degrades_without_aborting(sleeps):
    stub = OpenAIStub(fail_calls={1: StatusError(400, "bad request")})
    resp = classify_with_ai(_txs(4), batch_size=2, delay_seconds=0, client=stub)

    assert resp.success
    assert resp.failed_batches == 1
    assert len(stub.calls) == 2
    ok, failed = resp.results[:2], resp.results[2:]
    assert all(r.category is Category.OTHER_EXPENSES for r in ok)
    for r in failed:
        assert r.category is None
        assert r.confidence == 0.0
        assert r.needs_review
        assert r.reasoning == "Classification failed: bad request"


def test_rate_limited_batch_is_retried(sleeps):
    stub = OpenAIStub(fail_calls={0: StatusError(429)})
    resp = classify_with_ai(_txs(2), delay_seconds=0, client=stub)

    assert len(stub.calls) == 2
    assert resp.failed_batches == 0
    assert resp.classified == 2
    assert sleeps == [1.0]


def test_unparseable_reply_is_not_retried(sleeps):
    stub = OpenAIStub(raw_text="I could not classify these, sorry.")
    resp = classify_with_ai(_txs(2), client=stub)

    assert len(stub.calls) == 1
    assert resp.failed == 2
    assert resp.results[0].reasoning.startswith("Classification failed: Failed to parse")


def test_truncated_reply_keeps_complete_elements(sleeps):
    raw = (
        '[{"id": "t0", "category": "MEALS", "vendor": "Cafe", "confidence": 0.9},'
        ' {"id": "t1", "category": "TRAV'
    )
    resp = classify_with_ai(_txs(2), client=OpenAIStub(raw_text=raw))
    first, second = resp.results

    assert first.category is Category.MEALS
    assert first.vendor == "Cafe"
    assert second.category is None
    assert second.reasoning == "No classification returned"


def test_reply_cut_right_after_an_element_keeps_every_complete_one(sleeps):
    raw = '[{"id": "t0", "category": "MEALS"}, {"id": "t1", "category": "TRAVEL"}'
    assert extract_json_array(raw) == [
        {"id": "t0", "category": "MEALS"},
        {"id": "t1", "category": "TRAVEL"},
    ]

    resp = classify_with_ai(_txs(2), client=OpenAIStub(raw_text=raw))
    assert [r.category for r in resp.results] == [Category.MEALS, Category.TRAVEL]


def test_nested_cut_falls_back_to_last_element_boundary():
    raw = '[{"id": "t0", "category": "MEALS"}, {"id": "t1", "extra": {"k": 1}, "cat'
    assert extract_json_array(raw) == [{"id": "t0", "category": "MEALS"}]


def test_fenced_reply_labels_and_unknown_entries(sleeps):
    raw = (
        "```json\n"
        '[{"id": "t0", "category": "Travel", "confidence": 0.8},'
        ' {"id": "t1", "category": "Groceries", "confidence": 0.9},'
        ' {"id": "zzz", "category": "MEALS"},'
        ' {"id": "t2", "category": "MEALS", "confidence": 7}]\n'
        "```"
    )
    resp = classify_with_ai(_txs(3), client=OpenAIStub(raw_text=raw))
    travel, unknown, clamped = resp.results

    assert travel.category is Category.TRAVEL
    # Categories outside the vocabulary are never accepted
    assert unknown.category is None
    assert unknown.confidence == 0.0
    assert clamped.confidence == 1.0
    assert [r.id for r in resp.results] == ["t0", "t1", "t2"]


def test_empty_input_is_not_sent():
    stub = OpenAIStub()
    resp = classify_with_ai([], client=stub)

    assert not resp.success
    assert resp.error == "No transactions provided"
    assert stub.calls == []
    assert resp.to_dict() == {"success": False, "error": "No transactions provided"}


def test_invalid_batch_size_is_rejected():
    with pytest.raises(ValueError):
        classify_with_ai(_txs(1), batch_size=0, client=OpenAIStub())


def test_usage_sink_receives_record_and_failures_are_contained(sleeps):
    got: list[dict] = []
    done = threading.Event()

    def sink(record):
        got.append(dict(record))
        done.set()

    classify_with_ai(_txs(2), user_id="u1", client=OpenAIStub(), usage_sink=sink)
    assert done.wait(timeout=5)
    assert got[0]["user_id"] == "u1"
    assert got[0]["transaction_count"] == 2
    assert got[0]["success_count"] == 2

    def broken_sink(record):
        raise RuntimeError("usage table down")

    resp = classify_with_ai(_txs(1), client=OpenAIStub(), usage_sink=broken_sink)
    assert resp.success
