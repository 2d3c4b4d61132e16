"""Category enforcement and parsing of classification responses.

:func:`validate_category` is the single place that decides what category an
automated write may store. :func:`parse_suggestions` turns the oracle's JSON
body into typed :class:`~ledger_tidy.models.ClassificationResult` items.
"""

from __future__ import annotations

from collections.abc import Container, Mapping
from typing import Any

from pydantic import ValidationError

from .logging_setup import get_logger
from .models import ClassificationResult

_logger = get_logger("ledger_tidy.categorization")


def validate_category(proposed: str | None, catalog: Container[str], fallback: str) -> str:
    """Return ``proposed`` if it is a verbatim catalog member, else ``fallback``.

    Membership is exact and case-sensitive; no trimming or case folding is
    applied to the proposal.
    """

    if isinstance(proposed, str) and proposed in catalog:
        return proposed
    return fallback


def parse_suggestions(body: Mapping[str, Any]) -> list[ClassificationResult]:
    """Parse ``{"suggested_transactions": [...]}`` into results.

    Raises ``ValueError`` when the body is an error payload or lacks the
    ``suggested_transactions`` list. Individual malformed items are dropped
    with a warning so one bad entry does not discard a whole batch.
    """

    if not isinstance(body, Mapping):
        raise ValueError("Invalid response: expected a JSON object at top level")
    if body.get("error"):
        raise ValueError(f"Classification error payload: {body.get('error')!r}")

    raw_items = body.get("suggested_transactions")
    if not isinstance(raw_items, list):
        raise ValueError("Invalid response: missing or non-list 'suggested_transactions'")

    out: list[ClassificationResult] = []
    for pos, item in enumerate(raw_items):
        try:
            out.append(ClassificationResult.model_validate(item))
        except ValidationError as e:
            _logger.warning(
                "categorization:item_invalid position=%d errors=%d", pos, e.error_count()
            )
    return out
