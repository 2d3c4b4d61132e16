"""Selection filter: which rows need (re)classification."""

from __future__ import annotations

from collections.abc import Iterable

from .models import TransactionRecord
from .noise import is_generic_description, match_platform


def needs_processing(record: TransactionRecord, fallback_category: str) -> bool:
    """Return True when ``record`` should be sent for classification.

    Selected when the category is blank or equals ``fallback_category``, or
    when the raw description comes from a known platform (marketplace,
    payment processor) and the current description is still generic.
    """

    category = record.category.strip()
    if not category or category == fallback_category:
        return True
    if match_platform(record.original_description) is None:
        return False
    return is_generic_description(record.description)


def select_rows(
    records: Iterable[TransactionRecord],
    fallback_category: str,
    *,
    limit: int | None = None,
) -> list[TransactionRecord]:
    """Return the records needing processing in sheet order, capped at ``limit``."""

    out: list[TransactionRecord] = []
    for rec in records:
        if limit is not None and len(out) >= limit:
            break
        if needs_processing(rec, fallback_category):
            out.append(rec)
    return out
