"""Header-driven column resolution for the transaction sheet.

Resolution runs once per run and produces a fixed :class:`ColumnMap`. Optional
columns that are absent resolve to ``None`` and disable the feature that
depends on them (no amount -> amount-keyed receipt lookups are skipped; no AI
flag column -> rows are not flagged).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .config import ColumnNames, ConfigurationError

_REQUIRED: tuple[str, ...] = ("id", "original_description", "description", "category", "date")


@dataclass(frozen=True, slots=True)
class ColumnMap:
    """0-based column positions keyed by logical field."""

    id: int
    original_description: int
    description: int
    category: int
    date: int
    amount: int | None = None
    ai_flag: int | None = None

    @property
    def width(self) -> int:
        """Minimum row width needed to address every resolved column."""

        present = [
            i
            for i in (
                self.id,
                self.original_description,
                self.description,
                self.category,
                self.date,
                self.amount,
                self.ai_flag,
            )
            if i is not None
        ]
        return max(present) + 1


def _key(header: object) -> str:
    return " ".join(str(header or "").split()).casefold()


def find_column(headers: Sequence[str], name: str) -> int | None:
    """Return the index of the first header matching ``name``.

    Matching ignores surrounding/internal whitespace differences and case.
    """

    wanted = _key(name)
    for i, h in enumerate(headers):
        if _key(h) == wanted:
            return i
    return None


def resolve_columns(headers: Sequence[str], names: ColumnNames) -> ColumnMap:
    """Map logical field names to column positions.

    Raises :class:`ConfigurationError` naming every missing required header.
    """

    found: dict[str, int | None] = {
        field: find_column(headers, getattr(names, field))
        for field in (*_REQUIRED, "amount", "ai_flag")
    }
    missing = [getattr(names, f) for f in _REQUIRED if found[f] is None]
    if missing:
        raise ConfigurationError(
            "transaction sheet is missing required column(s): " + ", ".join(missing)
        )
    return ColumnMap(**found)  # type: ignore[arg-type]
