import base64
from datetime import date
from decimal import Decimal
from typing import Any

import pytest

import ledger_tidy.enrich as enrich_mod
from ledger_tidy.enrich import ReceiptContextEnricher, build_receipt_query
from ledger_tidy.gmail import GmailReceiptSearch, message_text, strip_html

ON = date(2024, 3, 5)


class _FakeSearch:
    def __init__(self, bodies: dict[str, str] | None = None, errors: int = 0) -> None:
        self._bodies = bodies or {}
        self._errors = errors
        self.queries: list[str] = []

    def search(self, query: str) -> str | None:
        self.queries.append(query)
        if self._errors:
            self._errors -= 1
            raise TimeoutError("mail search timed out")
        return self._bodies.get(query)


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(enrich_mod.time, "sleep", lambda _s: None)


def test_query_window_and_amount() -> None:
    assert (
        build_receipt_query("amazon.com", ON, Decimal("-23.5"))
        == 'from:amazon.com "23.50" after:2024/2/27 before:2024/3/9'
    )
    assert build_receipt_query("apple.com", ON) == "from:apple.com after:2024/2/27 before:2024/3/9"


def test_amount_match_returns_collapsed_truncated_snippet() -> None:
    query = build_receipt_query("amazon.com", ON, Decimal("-23.50"))
    search = _FakeSearch({query: "Your order:\n\n  Kindle   Paperwhite\n" + "x" * 100})
    enricher = ReceiptContextEnricher(search, snippet_chars=40)

    text = enricher.fetch_context(Decimal("-23.50"), ON, "amazon.com")

    assert text.startswith("Your order: Kindle Paperwhite x")
    assert len(text) == 40
    assert search.queries == [query]


def test_no_date_fallback_unless_allowed() -> None:
    date_only = build_receipt_query("apple.com", ON)
    search = _FakeSearch({date_only: "iCloud+ 50GB"})
    enricher = ReceiptContextEnricher(search)

    assert enricher.fetch_context(Decimal("0.99"), ON, "apple.com") == ""
    assert len(search.queries) == 1

    assert enricher.fetch_context(Decimal("0.99"), ON, "apple.com", allow_date_fallback=True) == (
        "iCloud+ 50GB"
    )
    assert search.queries[-1] == date_only


def test_unknown_amount_without_fallback_does_not_search() -> None:
    search = _FakeSearch()
    assert ReceiptContextEnricher(search).fetch_context(None, ON, "amazon.com") == ""
    assert search.queries == []


def test_lookup_failures_yield_empty_context() -> None:
    search = _FakeSearch(errors=10)
    enricher = ReceiptContextEnricher(search, attempts=2)
    assert enricher.fetch_context(Decimal("5"), ON, "ebay.com") == ""
    assert len(search.queries) == 2


def test_transient_failure_is_retried_once() -> None:
    query = build_receipt_query("ebay.com", ON, Decimal("5"))
    search = _FakeSearch({query: "Vintage lamp"}, errors=1)
    assert ReceiptContextEnricher(search).fetch_context(Decimal("5"), ON, "ebay.com") == (
        "Vintage lamp"
    )
    assert search.queries == [query, query]


# ---- Gmail adapter -----------------------------------------------------------


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")


def test_message_text_prefers_plain_part() -> None:
    message = {
        "payload": {
            "mimeType": "multipart/alternative",
            "parts": [
                {"mimeType": "text/html", "body": {"data": _b64("<p>HTML</p>")}},
                {"mimeType": "text/plain", "body": {"data": _b64("Plain body")}},
            ],
        }
    }
    assert message_text(message) == "Plain body"


def test_message_text_falls_back_to_html_then_snippet() -> None:
    html_only = {
        "payload": {
            "mimeType": "text/html",
            "body": {"data": _b64("<style>p{}</style><p>Order&nbsp;#1</p><p>Lamp</p>")},
        }
    }
    assert message_text(html_only) == "Order #1\nLamp"
    assert message_text({"payload": {}, "snippet": "short"}) == "short"


def test_strip_html_line_breaks() -> None:
    assert strip_html("<div>a<br>b</div><table><tr><td>c</td></tr></table>") == "a\nb\nc"


class _Exec:
    def __init__(self, result: dict[str, Any]) -> None:
        self._result = result

    def execute(self) -> dict[str, Any]:
        return self._result


class _FakeMessages:
    def __init__(self, hits: list[dict[str, str]], message: dict[str, Any]) -> None:
        self._hits = hits
        self._message = message
        self.list_calls: list[dict[str, Any]] = []
        self.get_calls: list[dict[str, Any]] = []

    def list(self, **kwargs: Any) -> _Exec:
        self.list_calls.append(kwargs)
        return _Exec({"messages": self._hits} if self._hits else {})

    def get(self, **kwargs: Any) -> _Exec:
        self.get_calls.append(kwargs)
        return _Exec(self._message)


class _FakeGmail:
    def __init__(self, messages: _FakeMessages) -> None:
        self._messages = messages

    def users(self) -> "_FakeGmail":
        return self

    def messages(self) -> _FakeMessages:
        return self._messages


def test_gmail_search_returns_first_hit_body() -> None:
    msg = {"payload": {"mimeType": "text/plain", "body": {"data": _b64("Thanks for your order")}}}
    messages = _FakeMessages([{"id": "m1"}, {"id": "m2"}], msg)

    body = GmailReceiptSearch(_FakeGmail(messages)).search("from:amazon.com")

    assert body == "Thanks for your order"
    assert messages.list_calls == [{"userId": "me", "q": "from:amazon.com", "maxResults": 1}]
    assert messages.get_calls == [{"userId": "me", "id": "m1", "format": "full"}]


def test_gmail_search_no_hits() -> None:
    messages = _FakeMessages([], {})
    assert GmailReceiptSearch(_FakeGmail(messages)).search("from:ebay.com") is None
    assert messages.get_calls == []
