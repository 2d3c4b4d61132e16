"""Public interface for the ``ledger_tidy`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import load_catalog, load_transactions, select_pending, tidy_transactions
from .categorization import validate_category
from .config import ColumnNames, ConfigurationError, TidyConfig, load_config
from .matcher import HistoricalMatcher, find_matches
from .models import (
    CategoryCatalog,
    ClassificationItem,
    ClassificationResult,
    MatchCandidate,
    RunSummary,
    TransactionRecord,
    Transactions,
)
from .normalize import normalize_description
from .selection import needs_processing, select_rows
from .store import CsvTableStore, TabularStore

__all__ = [
    # API
    "tidy_transactions",
    "load_transactions",
    "load_catalog",
    "select_pending",
    # Building blocks
    "normalize_description",
    "find_matches",
    "HistoricalMatcher",
    "needs_processing",
    "select_rows",
    "validate_category",
    # Config
    "TidyConfig",
    "ColumnNames",
    "ConfigurationError",
    "load_config",
    # Stores
    "TabularStore",
    "CsvTableStore",
    # Models / types
    "TransactionRecord",
    "Transactions",
    "CategoryCatalog",
    "MatchCandidate",
    "ClassificationItem",
    "ClassificationResult",
    "RunSummary",
]
