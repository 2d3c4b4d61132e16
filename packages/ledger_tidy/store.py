"""Tabular store interface and a CSV-directory implementation.

A store holds named sheets. Each sheet is a header row followed by data rows
of strings. Data rows are addressed by 0-based ``row_index`` (the header is
not counted). The core only needs three operations: read a whole sheet,
read one column by header name, and overwrite one full row.
"""

from __future__ import annotations

import csv
import os
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .columns import find_column
from .config import ConfigurationError
from .models import CategoryCatalog


@dataclass(frozen=True, slots=True)
class Table:
    headers: tuple[str, ...]
    rows: list[list[str]] = field(default_factory=list)

    def padded(self, row_index: int) -> list[str]:
        """Return a copy of the row padded with ``""`` to the header width."""

        row = list(self.rows[row_index])
        if len(row) < len(self.headers):
            row.extend([""] * (len(self.headers) - len(row)))
        return row


class TabularStore(ABC):
    """Header-driven sheet storage."""

    @property
    @abstractmethod
    def lock_key(self) -> str:
        """Stable identity of the backing store, used for the run lock."""

    @abstractmethod
    def read_table(self, sheet: str) -> Table: ...

    @abstractmethod
    def write_row(self, sheet: str, row_index: int, values: Sequence[str]) -> None: ...

    def column_values(self, sheet: str, header: str) -> list[str]:
        """Return the data values of the column titled ``header``.

        Raises :class:`ConfigurationError` when the header is absent.
        """

        table = self.read_table(sheet)
        idx = find_column(table.headers, header)
        if idx is None:
            raise ConfigurationError(f"sheet {sheet!r} has no column {header!r}")
        return [row[idx] if idx < len(row) else "" for row in table.rows]


class CsvTableStore(TabularStore):
    """One ``<sheet>.csv`` file per sheet inside ``directory``.

    Writes rewrite the whole file through a ``.tmp`` sibling and
    ``os.replace`` so a crash never leaves a half-written sheet.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._dir = Path(directory)

    @property
    def lock_key(self) -> str:
        return f"csv:{self._dir.resolve()}"

    def _path(self, sheet: str) -> Path:
        return self._dir / f"{sheet}.csv"

    def read_table(self, sheet: str) -> Table:
        path = self._path(sheet)
        if not path.is_file():
            raise ConfigurationError(f"sheet {sheet!r} not found at {path}")
        with open(path, encoding="utf-8-sig", newline="") as f:
            rows = [list(r) for r in csv.reader(f)]
        if not rows:
            raise ConfigurationError(f"sheet {sheet!r} has no header row")
        return Table(headers=tuple(h.strip() for h in rows[0]), rows=rows[1:])

    def write_row(self, sheet: str, row_index: int, values: Sequence[str]) -> None:
        path = self._path(sheet)
        with open(path, encoding="utf-8-sig", newline="") as f:
            rows = [list(r) for r in csv.reader(f)]
        target = row_index + 1  # skip header
        if row_index < 0 or target >= len(rows):
            raise IndexError(f"row_index {row_index} out of range for sheet {sheet!r}")
        rows[target] = [str(v) for v in values]

        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8", newline="") as f:
            csv.writer(f).writerows(rows)
        os.replace(tmp, path)


def load_category_catalog(store: TabularStore, sheet: str, header: str) -> CategoryCatalog:
    """Read the allowed categories from ``sheet``/``header`` in row order."""

    return CategoryCatalog(store.column_values(sheet, header))
