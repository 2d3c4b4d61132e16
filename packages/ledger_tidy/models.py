"""Data models for ``ledger_tidy``.

Domain records are frozen dataclasses; the payload returned by the
classification oracle is validated with Pydantic because it crosses a trust
boundary (model output).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# Sheet rows
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """One transaction row as read from the tabular store.

    Attributes
    ----------
    row_index:
        0-based position of the data row in the sheet (header excluded). This
        is the identity used for write-back; results are never re-located by
        searching descriptions.
    transaction_id:
        Unique id of the transaction within the sheet.
    original_description:
        Raw merchant string from the bank feed (may be ``None``).
    description / category:
        Current human-facing values; empty string when blank.
    date / amount:
        Parsed values, ``None`` when blank/unparseable or the column is absent.
    ai_flag:
        Whether the row was already modified by an automated run.
    values:
        The full raw row, padded to the header width.
    """

    row_index: int
    transaction_id: str
    original_description: str | None
    description: str
    category: str
    date: date | None = None
    amount: Decimal | None = None
    ai_flag: bool = False
    values: tuple[str, ...] = ()


type Transactions = Iterable[TransactionRecord]


class CategoryCatalog:
    """Ordered set of allowed category strings.

    Membership is a case-sensitive, exact match. Blank entries are dropped and
    duplicates keep their first position.
    """

    __slots__ = ("_items", "_members")

    def __init__(self, categories: Iterable[str]) -> None:
        cleaned = (c.strip() for c in categories if isinstance(c, str))
        self._items: tuple[str, ...] = tuple(dict.fromkeys(c for c in cleaned if c))
        self._members = frozenset(self._items)

    def __contains__(self, value: object) -> bool:
        return value in self._members

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"CategoryCatalog({list(self._items)!r})"

    @property
    def items(self) -> tuple[str, ...]:
        return self._items


# ---------------------------------------------------------------------------
# Classification request/response
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MatchCandidate:
    """A previously labeled transaction used as few-shot context."""

    original_description: str | None
    updated_description: str
    category: str


@dataclass(frozen=True, slots=True)
class ClassificationItem:
    """One entry of a classification request; built per batch, then discarded."""

    transaction_id: str
    original_description: str | None
    transaction_date: date | None = None
    platform_order_details: str | None = None
    previous_transactions: tuple[MatchCandidate, ...] = ()


class ClassificationResult(BaseModel):
    """A single suggestion returned by the classification oracle."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    transaction_id: str
    updated_description: str | None = None
    category: str | None = None

    @field_validator("transaction_id", mode="before")
    @classmethod
    def _id_from_number(cls, v: object) -> object:
        # Sheets may hand back numeric ids; the model sometimes echoes them as numbers.
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("transaction_id")
    @classmethod
    def _id_non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("transaction_id must be non-empty")
        return v


# ---------------------------------------------------------------------------
# Run accounting
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class RunSummary:
    """Counters describing what a run did; returned by the orchestrator."""

    rows_total: int = 0
    rows_selected: int = 0
    batches: int = 0
    batches_failed: int = 0
    rows_updated: int = 0
    rows_unanswered: int = 0
    results_ignored: int = 0
    categories_replaced: int = 0
    write_failures: int = 0
    cancelled: bool = False
    updated_ids: list[str] = field(default_factory=list)
