"""Sheet rows -> :class:`~ledger_tidy.models.TransactionRecord`.

Cell parsing is lenient: a malformed amount or date becomes ``None`` rather
than failing the run. Rows without an id, and repeated ids after their first
row, are skipped with a warning so that every id maps to exactly one row.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from .columns import ColumnMap
from .logging_setup import get_logger
from .models import TransactionRecord
from .store import Table

_DATE_FORMATS: tuple[str, ...] = ("%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d", "%d %b %Y", "%b %d, %Y")
_TRUE_VALUES = frozenset({"true", "yes", "y", "1", "x", "✓"})

_logger = get_logger("ledger_tidy.records")


def parse_amount(raw: str | None) -> Decimal | None:
    """Parse ``"-$1,234.56"``, ``"(12.00)"``, ``"12"`` and similar; ``None`` if blank/invalid."""

    if raw is None:
        return None
    s = raw.strip()
    if not s:
        return None
    negative = False
    # Strip leading sign, currency symbol and surrounding parentheses in any order.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s[:1] in ("$", "£", "€"):
            s = s[1:].lstrip()
            changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
            changed = True
        if not changed:
            break
    s = s.replace(",", "").strip()
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    if not d.is_finite():
        return None
    return -abs(d) if negative else d


def parse_date(raw: str | None) -> date | None:
    """Parse common sheet date renderings; a time part after whitespace/``T`` is ignored."""

    if raw is None:
        return None
    s = raw.strip()
    if not s:
        return None
    candidates = [s]
    first = s.split()[0].split("T", 1)[0]
    if first != s:
        candidates.append(first)
    for text in candidates:
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
    return None


def parse_flag(raw: str | None) -> bool:
    return (raw or "").strip().lower() in _TRUE_VALUES


def _cell(row: list[str], idx: int | None) -> str | None:
    if idx is None or idx >= len(row):
        return None
    return row[idx]


def records_from_table(table: Table, columns: ColumnMap) -> list[TransactionRecord]:
    """Build one record per usable data row, in sheet order."""

    out: list[TransactionRecord] = []
    seen: set[str] = set()
    for row_index in range(len(table.rows)):
        row = table.padded(row_index)
        tid = (_cell(row, columns.id) or "").strip()
        if not tid:
            if any(c.strip() for c in row):
                _logger.warning("records:missing_id row_index=%d", row_index)
            continue
        if tid in seen:
            _logger.warning("records:duplicate_id id=%s row_index=%d", tid, row_index)
            continue
        seen.add(tid)

        original = _cell(row, columns.original_description)
        out.append(
            TransactionRecord(
                row_index=row_index,
                transaction_id=tid,
                original_description=original if original and original.strip() else None,
                description=(_cell(row, columns.description) or "").strip(),
                category=(_cell(row, columns.category) or "").strip(),
                date=parse_date(_cell(row, columns.date)),
                amount=parse_amount(_cell(row, columns.amount)),
                ai_flag=parse_flag(_cell(row, columns.ai_flag)),
                values=tuple(row),
            )
        )
    return out
