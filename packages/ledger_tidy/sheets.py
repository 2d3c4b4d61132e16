"""Google Sheets implementation of :class:`~ledger_tidy.store.TabularStore`.

Each sheet is a tab of one spreadsheet. Data row ``i`` lives on sheet row
``i + 2`` (row 1 is the header). Values are read as displayed. A row write
sends only the cells that differ from what was read, each as its own range
with ``USER_ENTERED`` so checkboxes keep their sheet semantics. Untouched
cells (formulas, zero-padded ids, date-like text) are never rewritten.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from .config import ConfigurationError
from .logging_setup import get_logger
from .store import Table, TabularStore

SHEETS_SCOPES: tuple[str, ...] = ("https://www.googleapis.com/auth/spreadsheets",)

# Reads are safe to repeat; writes are never retried.
_READ_RETRIES = 1

_logger = get_logger("ledger_tidy.sheets")


def column_letter(index: int) -> str:
    """0-based column index -> A1 column letters (0 -> A, 26 -> AA)."""

    if index < 0:
        raise ValueError("column index must be non-negative")
    letters = ""
    n = index + 1
    while n:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def quote_sheet_name(sheet: str) -> str:
    """Quote a tab name for A1 notation, doubling embedded apostrophes."""

    return "'" + sheet.replace("'", "''") + "'"


def build_sheets_service(credentials_file: str) -> Any:
    """Build a Sheets v4 service from a service-account key or authorized-user token."""

    import json

    from google.oauth2 import credentials as user_credentials
    from google.oauth2 import service_account
    from googleapiclient.discovery import build

    with open(credentials_file, encoding="utf-8") as f:
        info = json.load(f)
    if info.get("type") == "service_account":
        creds = service_account.Credentials.from_service_account_info(
            info, scopes=list(SHEETS_SCOPES)
        )
    else:
        creds = user_credentials.Credentials.from_authorized_user_info(
            info, scopes=list(SHEETS_SCOPES)
        )
    return build("sheets", "v4", credentials=creds, cache_discovery=False)


class GoogleSheetsStore(TabularStore):
    """Tabs of one Google spreadsheet.

    Pass either a ready ``service`` (e.g. a test double) or a
    ``credentials_file``; the service is built lazily on first use.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        *,
        service: Any | None = None,
        credentials_file: str | None = None,
    ) -> None:
        if service is None and not credentials_file:
            raise ConfigurationError("GoogleSheetsStore needs a service or a credentials file")
        self._spreadsheet_id = spreadsheet_id
        self._service = service
        self._credentials_file = credentials_file
        # Rows as last read (or written), keyed by sheet; writes diff against these.
        self._read_rows: dict[str, list[list[str]]] = {}

    @property
    def lock_key(self) -> str:
        return f"gsheets:{self._spreadsheet_id}"

    def _values(self) -> Any:
        if self._service is None:
            assert self._credentials_file is not None
            self._service = build_sheets_service(self._credentials_file)
        return self._service.spreadsheets().values()

    def read_table(self, sheet: str) -> Table:
        result = (
            self._values()
            .get(spreadsheetId=self._spreadsheet_id, range=quote_sheet_name(sheet))
            .execute(num_retries=_READ_RETRIES)
        )
        values: list[list[Any]] = result.get("values", [])
        if not values:
            raise ConfigurationError(f"sheet {sheet!r} has no header row")
        headers = tuple(str(h).strip() for h in values[0])
        rows = [[str(v) for v in row] for row in values[1:]]
        self._read_rows[sheet] = [list(r) for r in rows]
        _logger.debug("sheets:read sheet=%s rows=%d", sheet, len(rows))
        return Table(headers=headers, rows=rows)

    def _row_as_read(self, sheet: str, row_index: int) -> list[str]:
        if sheet not in self._read_rows:
            self.read_table(sheet)
        rows = self._read_rows[sheet]
        if row_index >= len(rows):
            raise IndexError(f"row_index {row_index} out of range for sheet {sheet!r}")
        return rows[row_index]

    def write_row(self, sheet: str, row_index: int, values: Sequence[str]) -> None:
        if row_index < 0:
            raise IndexError(f"row_index {row_index} out of range for sheet {sheet!r}")
        current = self._row_as_read(sheet, row_index)
        changed = [
            (col, str(value))
            for col, value in enumerate(values)
            if str(value) != (current[col] if col < len(current) else "")
        ]
        if not changed:
            _logger.debug("sheets:write_skipped sheet=%s row_index=%d", sheet, row_index)
            return

        sheet_row = row_index + 2
        quoted = quote_sheet_name(sheet)
        data = [
            {"range": f"{quoted}!{column_letter(col)}{sheet_row}", "values": [[value]]}
            for col, value in changed
        ]
        self._values().batchUpdate(
            spreadsheetId=self._spreadsheet_id,
            body={"valueInputOption": "USER_ENTERED", "data": data},
        ).execute()

        if len(current) < len(values):
            current.extend([""] * (len(values) - len(current)))
        for col, value in changed:
            current[col] = value
        _logger.debug(
            "sheets:write sheet=%s row_index=%d cells=%d", sheet, row_index, len(changed)
        )
