"""Run configuration for ``ledger_tidy``.

A single :class:`TidyConfig` is built at startup (see :func:`load_config`)
and passed explicitly into every component. Nothing in the package reads
configuration from process-global state after that point.

Environment variables (all optional, prefix ``LEDGER_TIDY_``):

- ``TRANSACTIONS_SHEET`` / ``CATEGORIES_SHEET`` / ``CATEGORY_LIST_HEADER``
- ``COLUMN_ID``, ``COLUMN_ORIGINAL_DESCRIPTION``, ``COLUMN_DESCRIPTION``,
  ``COLUMN_CATEGORY``, ``COLUMN_DATE``, ``COLUMN_AMOUNT``, ``COLUMN_AI_FLAG``
- ``FALLBACK_CATEGORY``, ``MAX_BATCH_SIZE``, ``MAX_ROWS``, ``MODEL``,
  ``ENABLE_RECEIPTS``, ``ORACLE_TIMEOUT_SEC``, ``ORACLE_MAX_ATTEMPTS``
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_FALLBACK_CATEGORY = "To Be Categorized"
MAX_BATCH_SIZE = 50

_ENV_PREFIX = "LEDGER_TIDY_"


class ConfigurationError(ValueError):
    """Raised when required configuration (or a required column) is missing
    or invalid. This is the only error kind that aborts a run."""


class ColumnNames(BaseModel):
    """Header names of the transaction sheet, keyed by logical field."""

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    id: str = "Transaction ID"
    original_description: str = "Full Description"
    description: str = "Description"
    category: str = "Category"
    date: str = "Date"
    amount: str = "Amount"
    ai_flag: str = "AI Modified"

    @field_validator("*")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        if not v:
            raise ValueError("column header names must be non-empty")
        return v


class TidyConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    transactions_sheet: str = "Transactions"
    categories_sheet: str = "Categories"
    category_list_header: str = "Category"
    columns: ColumnNames = Field(default_factory=ColumnNames)

    fallback_category: str = DEFAULT_FALLBACK_CATEGORY
    max_batch_size: int = Field(default=MAX_BATCH_SIZE, gt=0)
    max_candidates: int = Field(default=3, gt=0)
    match_key_tokens: int = Field(default=3, gt=0)
    max_rows: int | None = Field(default=None, gt=0)

    enable_receipts: bool = False
    receipt_snippet_chars: int = Field(default=1500, gt=0)

    model: str = "gpt-5"
    oracle_timeout_sec: float = Field(default=120.0, gt=0)
    oracle_max_attempts: int = Field(default=2, ge=1)

    ai_flag_value: str = "TRUE"
    dry_run: bool = False

    @field_validator("fallback_category", "transactions_sheet", "categories_sheet")
    @classmethod
    def _required_text(cls, v: str) -> str:
        if not v:
            raise ValueError("must be non-empty")
        return v


# Flat env suffix -> (section, field). ``None`` section means top-level.
_ENV_FIELDS: dict[str, tuple[str | None, str]] = {
    "TRANSACTIONS_SHEET": (None, "transactions_sheet"),
    "CATEGORIES_SHEET": (None, "categories_sheet"),
    "CATEGORY_LIST_HEADER": (None, "category_list_header"),
    "FALLBACK_CATEGORY": (None, "fallback_category"),
    "MAX_BATCH_SIZE": (None, "max_batch_size"),
    "MAX_ROWS": (None, "max_rows"),
    "ENABLE_RECEIPTS": (None, "enable_receipts"),
    "RECEIPT_SNIPPET_CHARS": (None, "receipt_snippet_chars"),
    "MODEL": (None, "model"),
    "ORACLE_TIMEOUT_SEC": (None, "oracle_timeout_sec"),
    "ORACLE_MAX_ATTEMPTS": (None, "oracle_max_attempts"),
    "AI_FLAG_VALUE": (None, "ai_flag_value"),
    "COLUMN_ID": ("columns", "id"),
    "COLUMN_ORIGINAL_DESCRIPTION": ("columns", "original_description"),
    "COLUMN_DESCRIPTION": ("columns", "description"),
    "COLUMN_CATEGORY": ("columns", "category"),
    "COLUMN_DATE": ("columns", "date"),
    "COLUMN_AMOUNT": ("columns", "amount"),
    "COLUMN_AI_FLAG": ("columns", "ai_flag"),
}


def load_config(env: Mapping[str, str] | None = None, **overrides: Any) -> TidyConfig:
    """Build a :class:`TidyConfig` from ``LEDGER_TIDY_*`` variables.

    ``env`` defaults to ``os.environ``. Keyword ``overrides`` take precedence
    over the environment; ``None`` values are ignored so CLI options that were
    not given fall through. Invalid values raise :class:`ConfigurationError`.
    """

    source = os.environ if env is None else env
    top: dict[str, Any] = {}
    cols: dict[str, Any] = {}
    for suffix, (section, field) in _ENV_FIELDS.items():
        raw = source.get(_ENV_PREFIX + suffix)
        if raw is None or not raw.strip():
            continue
        (cols if section == "columns" else top)[field] = raw.strip()

    for key, value in overrides.items():
        if value is None:
            continue
        if key == "columns":
            cols.update(value.model_dump() if isinstance(value, ColumnNames) else dict(value))
        else:
            top[key] = value

    if cols:
        top["columns"] = cols
    try:
        return TidyConfig.model_validate(top)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e
