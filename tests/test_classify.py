import json
from datetime import date
from typing import Any

import pytest

import ledger_tidy.classify as classify_mod
from ledger_tidy.classify import OpenAIClassifier, _is_transient
from ledger_tidy.models import CategoryCatalog, ClassificationItem, MatchCandidate
from ledger_tidy.prompting import build_response_format, item_to_payload
from tests.helpers.openai_stub import OpenAIStub, RawOpenAIStub, extract_items

FALLBACK = "To Be Categorized"
CATALOG = CategoryCatalog(["Groceries", "Dining", "Shopping"])

ITEMS = [
    ClassificationItem(
        transaction_id="T1",
        original_description="SQ *COFFEE SHOP XX1234",
        transaction_date=date(2024, 3, 5),
        previous_transactions=(
            MatchCandidate(
                original_description="SQ *COFFEE SHOP XX9876",
                updated_description="Coffee Shop",
                category="Dining",
            ),
        ),
    ),
    ClassificationItem(transaction_id="T2", original_description="TESCO STORES 2041"),
]


class _HTTPError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def _reuse_or_groceries(item: dict[str, Any]) -> tuple[str, str]:
    prev = item["previous_transactions"]
    if prev:
        return prev[0]["updated_description"], prev[0]["category"]
    return "Tesco", "Groceries"


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[int]:
    calls: list[int] = []
    monkeypatch.setattr(classify_mod, "_pause_before_retry", calls.append)
    return calls


def test_batch_round_trip_through_responses_api() -> None:
    calls: list[dict[str, Any]] = []
    stub = OpenAIStub(_reuse_or_groceries, calls)
    classify = OpenAIClassifier(CATALOG, FALLBACK, model="gpt-test", client=stub)

    results = classify(ITEMS)

    assert results is not None
    assert [(r.transaction_id, r.updated_description, r.category) for r in results] == [
        ("T1", "Coffee Shop", "Dining"),
        ("T2", "Tesco", "Groceries"),
    ]
    (call,) = calls
    assert call["model"] == "gpt-test"
    sent = extract_items(call["input"])
    assert [i["transaction_id"] for i in sent] == ["T1", "T2"]
    assert sent[0]["transaction_date"] == "2024-03-05"
    assert sent[0]["previous_transactions"][0]["category"] == "Dining"


def test_prompt_enumerates_catalog_and_fallback() -> None:
    calls: list[dict[str, Any]] = []
    OpenAIClassifier(CATALOG, FALLBACK, client=OpenAIStub(_reuse_or_groceries, calls))(ITEMS)

    instructions = calls[0]["instructions"]
    for category in (*CATALOG, FALLBACK):
        assert f"- {category}" in instructions
    assert "previous_transactions" in instructions

    schema = calls[0]["text"]["format"]["schema"]
    item_schema = schema["properties"]["suggested_transactions"]["items"]
    assert item_schema["properties"]["category"]["enum"] == [
        "Groceries",
        "Dining",
        "Shopping",
        FALLBACK,
    ]
    assert calls[0]["text"]["format"]["strict"] is True


def test_retries_rate_limit_then_succeeds(sleeps: list[int]) -> None:
    stub = OpenAIStub(_reuse_or_groceries, errors=[_HTTPError(429)])
    classify = OpenAIClassifier(CATALOG, FALLBACK, client=stub, max_attempts=2)

    results = classify(ITEMS)

    assert results is not None and len(results) == 2
    assert len(stub.calls) == 2
    assert sleeps == [1]


def test_gives_up_after_max_attempts(sleeps: list[int]) -> None:
    stub = OpenAIStub(_reuse_or_groceries, errors=[_HTTPError(503), _HTTPError(503)])
    classify = OpenAIClassifier(CATALOG, FALLBACK, client=stub, max_attempts=2)

    assert classify(ITEMS) is None
    assert len(stub.calls) == 2
    assert sleeps == [1]


def test_client_errors_are_not_retried(sleeps: list[int]) -> None:
    stub = OpenAIStub(_reuse_or_groceries, errors=[_HTTPError(400)])
    assert OpenAIClassifier(CATALOG, FALLBACK, client=stub)(ITEMS) is None
    assert len(stub.calls) == 1
    assert sleeps == []


@pytest.mark.parametrize(
    "output_text",
    [
        json.dumps({"error": "content policy"}),
        "not json at all",
        json.dumps(["T1", "T2"]),
        json.dumps({"results": []}),
    ],
)
def test_bad_payloads_fail_the_batch(output_text: str, sleeps: list[int]) -> None:
    stub = RawOpenAIStub(output_text)
    assert OpenAIClassifier(CATALOG, FALLBACK, client=stub)(ITEMS) is None
    assert len(stub.calls) == 1


def test_empty_batch_makes_no_call() -> None:
    stub = RawOpenAIStub("{}")
    assert OpenAIClassifier(CATALOG, FALLBACK, client=stub)([]) == []
    assert stub.calls == []


def test_retryable_classification() -> None:
    assert _is_transient(_HTTPError(429))
    assert _is_transient(_HTTPError(500))
    assert not _is_transient(_HTTPError(404))
    assert not _is_transient(ValueError("bad json"))


def test_item_payload_omits_empty_optional_fields() -> None:
    payload = item_to_payload(ITEMS[1])
    assert payload == {
        "transaction_id": "T2",
        "original_description": "TESCO STORES 2041",
        "previous_transactions": [],
    }


def test_response_format_deduplicates_fallback() -> None:
    fmt = build_response_format(["Dining", FALLBACK], FALLBACK)
    enum = fmt["schema"]["properties"]["suggested_transactions"]["items"]["properties"][
        "category"
    ]["enum"]
    assert enum == ["Dining", FALLBACK]
