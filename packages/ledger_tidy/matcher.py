"""Historical matching: find previously labeled rows similar to a match key."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date

from .models import MatchCandidate, TransactionRecord
from .noise import is_generic_description
from .normalize import DEFAULT_MAX_TOKENS, normalize_description

DEFAULT_LIMIT = 3


@dataclass(frozen=True, slots=True)
class _IndexedRow:
    record: TransactionRecord
    key: str  # normalized original description
    description: str  # lower-cased current description


class HistoricalMatcher:
    """Index of labeled rows used as few-shot exemplars.

    Built once per run from a snapshot of the sheet. Only rows with a
    non-empty category and a non-generic description are indexed, so the
    matcher never feeds placeholder labels back to the model. Rows labeled
    with ``fallback_category`` are excluded too: they are themselves awaiting
    classification.
    """

    def __init__(
        self,
        history: Iterable[TransactionRecord],
        *,
        fallback_category: str | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self._max_tokens = max_tokens
        self._rows: list[_IndexedRow] = []
        for rec in history:
            category = rec.category.strip()
            if not category or category == fallback_category:
                continue
            if is_generic_description(rec.description):
                continue
            self._rows.append(
                _IndexedRow(
                    record=rec,
                    key=normalize_description(rec.original_description, max_tokens=max_tokens),
                    description=" ".join(rec.description.split()).lower(),
                )
            )

    def __len__(self) -> int:
        return len(self._rows)

    def find_matches(
        self,
        match_key: str,
        *,
        limit: int = DEFAULT_LIMIT,
        exclude_id: str | None = None,
    ) -> list[MatchCandidate]:
        """Return up to ``limit`` candidates for ``match_key``, most recent first.

        A row qualifies when the key is a substring of its normalized original
        description or of its current description (case-insensitive). An
        empty key matches nothing. Ties on date (and undated rows, which sort
        last) keep sheet order.
        """

        key = " ".join(match_key.split()).lower()
        if not key or limit <= 0:
            return []
        hits = [
            r
            for r in self._rows
            if r.record.transaction_id != exclude_id and (key in r.key or key in r.description)
        ]
        hits.sort(key=_recency_key)
        return [
            MatchCandidate(
                original_description=r.record.original_description,
                updated_description=r.record.description.strip(),
                category=r.record.category.strip(),
            )
            for r in hits[:limit]
        ]


def _recency_key(row: _IndexedRow) -> tuple[int, int]:
    # list.sort is stable; negate ordinals so newer dates come first.
    d: date | None = row.record.date
    return (1, 0) if d is None else (0, -d.toordinal())


def find_matches(
    match_key: str,
    history: Sequence[TransactionRecord],
    *,
    limit: int = DEFAULT_LIMIT,
    fallback_category: str | None = None,
) -> list[MatchCandidate]:
    """One-shot convenience wrapper around :class:`HistoricalMatcher`."""

    return HistoricalMatcher(history, fallback_category=fallback_category).find_matches(
        match_key, limit=limit
    )
