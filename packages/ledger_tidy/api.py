"""Public API: load, select and clean up transactions in a tabular store.

:func:`tidy_transactions` is the end-to-end entry point. It resolves columns
and loads the category catalog once (both fatal when missing), snapshots the
sheet, selects the rows that need work and hands them to
:class:`~ledger_tidy.batching.BatchOrchestrator`.
"""

from __future__ import annotations

import threading

from .batching import BatchOrchestrator, Classifier
from .columns import ColumnMap, resolve_columns
from .config import ConfigurationError, TidyConfig
from .enrich import ReceiptContextEnricher
from .logging_setup import get_logger
from .models import CategoryCatalog, RunSummary, TransactionRecord
from .records import records_from_table
from .selection import select_rows
from .store import TabularStore, load_category_catalog

_logger = get_logger("ledger_tidy.api")


def load_transactions(
    store: TabularStore, config: TidyConfig
) -> tuple[ColumnMap, list[TransactionRecord]]:
    """Read the transaction sheet and return its column map and records."""

    table = store.read_table(config.transactions_sheet)
    columns = resolve_columns(table.headers, config.columns)
    if columns.amount is None:
        _logger.warning(
            "tidy:optional_column_missing column=%r effect=no_amount_receipt_lookup",
            config.columns.amount,
        )
    if columns.ai_flag is None:
        _logger.warning(
            "tidy:optional_column_missing column=%r effect=no_ai_flag", config.columns.ai_flag
        )
    return columns, records_from_table(table, columns)


def load_catalog(store: TabularStore, config: TidyConfig) -> CategoryCatalog:
    """Load the allowed categories; an empty catalog is a configuration error."""

    catalog = load_category_catalog(
        store, config.categories_sheet, config.category_list_header
    )
    if not catalog:
        raise ConfigurationError(
            f"category sheet {config.categories_sheet!r} has no categories under "
            f"{config.category_list_header!r}"
        )
    return catalog


def select_pending(
    records: list[TransactionRecord], config: TidyConfig
) -> list[TransactionRecord]:
    """Rows needing classification, in sheet order, capped at ``config.max_rows``."""

    return select_rows(records, config.fallback_category, limit=config.max_rows)


def tidy_transactions(
    store: TabularStore,
    *,
    config: TidyConfig,
    classify: Classifier | None = None,
    enricher: ReceiptContextEnricher | None = None,
    cancel_event: threading.Event | None = None,
) -> RunSummary:
    """Clean up descriptions and categories of the rows that need it.

    Parameters
    ----------
    store:
        Backing tabular store holding both the transaction and category sheets.
    config:
        Run configuration.
    classify:
        Classification oracle; defaults to an :class:`~ledger_tidy.classify.OpenAIClassifier`
        for the loaded catalog.
    enricher:
        Optional receipt context source (only used when given).
    cancel_event:
        When set, the run stops before starting the next batch.

    Returns
    -------
    RunSummary
        Counters for selected/updated/unanswered rows and failed batches.
        Only configuration problems raise; everything else is counted and
        logged.
    """

    columns, records = load_transactions(store, config)
    catalog = load_catalog(store, config)

    selected = select_pending(records, config)
    summary = RunSummary(rows_total=len(records))
    _logger.info(
        "tidy:start rows=%d selected=%d categories=%d batch_size=%d dry_run=%s",
        len(records),
        len(selected),
        len(catalog),
        config.max_batch_size,
        config.dry_run,
    )
    if not selected:
        return summary

    if classify is None:
        from .classify import OpenAIClassifier

        classify = OpenAIClassifier(
            catalog,
            config.fallback_category,
            model=config.model,
            timeout=config.oracle_timeout_sec,
            max_attempts=config.oracle_max_attempts,
        )

    orchestrator = BatchOrchestrator(
        store, columns, catalog, config, classify, enricher=enricher
    )
    orchestrator.run(selected, records, cancel_event=cancel_event, summary=summary)
    _logger.info(
        "tidy:summary batches=%d failed=%d updated=%d unanswered=%d ignored=%d "
        "replaced=%d write_failures=%d cancelled=%s",
        summary.batches,
        summary.batches_failed,
        summary.rows_updated,
        summary.rows_unanswered,
        summary.results_ignored,
        summary.categories_replaced,
        summary.write_failures,
        summary.cancelled,
    )
    return summary
