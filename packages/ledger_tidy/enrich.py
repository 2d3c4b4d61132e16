"""Receipt-based context for platform purchases.

Given a transaction date (and amount when known), search a mailbox for a
receipt from the platform's sender domain inside a window of 7 days before to
3 days after the transaction. The first matching body, truncated, is passed
to the model as ``platform_order_details``.

Lookups are best-effort: every failure is logged and yields ``""``.
"""

from __future__ import annotations

import time
from datetime import date, timedelta
from decimal import Decimal
from typing import Protocol

from .logging_setup import get_logger

WINDOW_DAYS_BEFORE = 7
WINDOW_DAYS_AFTER = 3

_RETRY_DELAY_SEC = 1.0

_logger = get_logger("ledger_tidy.enrich")


class ReceiptSearch(Protocol):
    """Mail search oracle: free-text query in, first matching body out."""

    def search(self, query: str) -> str | None: ...


def _query_date(d: date) -> str:
    # Gmail-style date bounds: YYYY/M/D without zero padding.
    return f"{d.year}/{d.month}/{d.day}"


def build_receipt_query(
    platform_domain: str,
    on: date,
    amount: Decimal | None = None,
) -> str:
    """Return the search query for a receipt from ``platform_domain``.

    The amount, when given, is matched as a quoted phrase of its absolute
    value with two decimals (bank feeds sign debits negative; receipts do not).
    """

    after = on - timedelta(days=WINDOW_DAYS_BEFORE)
    # before: is exclusive
    before = on + timedelta(days=WINDOW_DAYS_AFTER + 1)
    parts = [f"from:{platform_domain}"]
    if amount is not None:
        parts.append(f'"{abs(amount):.2f}"')
    parts.append(f"after:{_query_date(after)}")
    parts.append(f"before:{_query_date(before)}")
    return " ".join(parts)


class ReceiptContextEnricher:
    """Fetch receipt text for a transaction through a :class:`ReceiptSearch`.

    Parameters
    ----------
    search:
        The mailbox search oracle.
    snippet_chars:
        Maximum length of the returned context.
    attempts:
        Total attempts per query; lookups are read-only so one retry is safe.
    """

    def __init__(self, search: ReceiptSearch, *, snippet_chars: int = 1500, attempts: int = 2):
        self._search = search
        self._snippet_chars = snippet_chars
        self._attempts = max(1, attempts)

    def _lookup(self, query: str) -> str | None:
        for attempt in range(1, self._attempts + 1):
            try:
                return self._search.search(query)
            except Exception as e:  # noqa: BLE001 - enrichment is best-effort
                _logger.warning(
                    "receipts:lookup_failed attempt=%d error=%s query=%r",
                    attempt,
                    e.__class__.__name__,
                    query,
                )
                if attempt < self._attempts:
                    time.sleep(_RETRY_DELAY_SEC * attempt)
        return None

    def fetch_context(
        self,
        amount: Decimal | None,
        on: date,
        platform_domain: str,
        allow_date_fallback: bool = False,
    ) -> str:
        """Return receipt text for the transaction, or ``""`` when none is found.

        Tries an amount-keyed query first (when ``amount`` is known) and, only
        when ``allow_date_fallback`` is set, a date-window-only query.
        """

        queries: list[str] = []
        try:
            if amount is not None:
                queries.append(build_receipt_query(platform_domain, on, amount))
            if allow_date_fallback:
                queries.append(build_receipt_query(platform_domain, on))
        except (OverflowError, ValueError, ArithmeticError) as e:
            _logger.warning("receipts:query_invalid error=%s", e.__class__.__name__)
            return ""

        for query in queries:
            body = self._lookup(query)
            if body and body.strip():
                text = " ".join(body.split())
                _logger.debug("receipts:found query=%r chars=%d", query, len(text))
                return text[: self._snippet_chars]
        return ""
