"""Batch construction, oracle invocation and write-back reconciliation.

Selected rows are split into consecutive chunks of at most
``config.max_batch_size``. For each chunk the orchestrator:

1. builds one :class:`~ledger_tidy.models.ClassificationItem` per row
   (match key -> historical candidates -> optional receipt context);
2. calls the classification oracle once;
3. maps results back by ``transaction_id`` and writes description, validated
   category and AI flag to the row's original ``row_index``.

A failed chunk (``None`` result or an exception from the oracle) is skipped
and the run moves on; rows without a result stay untouched. Cancellation is
honored between chunks only, never inside a chunk's writes.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Sequence

from .categorization import validate_category
from .columns import ColumnMap
from .config import TidyConfig
from .enrich import ReceiptContextEnricher
from .logging_setup import get_logger
from .matcher import HistoricalMatcher
from .models import (
    CategoryCatalog,
    ClassificationItem,
    ClassificationResult,
    RunSummary,
    TransactionRecord,
)
from .noise import match_platform
from .normalize import normalize_description
from .store import TabularStore

type Classifier = Callable[[Sequence[ClassificationItem]], list[ClassificationResult] | None]

_logger = get_logger("ledger_tidy.batching")


def chunk(rows: Sequence[TransactionRecord], size: int) -> Iterator[list[TransactionRecord]]:
    """Yield consecutive slices of at most ``size`` rows, preserving order."""

    if size <= 0:
        raise ValueError("size must be a positive integer")
    for base in range(0, len(rows), size):
        yield list(rows[base : base + size])


class BatchOrchestrator:
    """Run classification batches against one transaction sheet.

    Parameters
    ----------
    store / columns:
        Where and how to write back; ``columns`` comes from the run's single
        column resolution.
    catalog:
        Allowed categories; every written category is checked against it.
    config:
        Batch size, fallback category, candidate limits, AI flag value,
        dry-run switch.
    classify:
        The classification oracle.
    enricher:
        Optional receipt lookup for platform purchases.
    """

    def __init__(
        self,
        store: TabularStore,
        columns: ColumnMap,
        catalog: CategoryCatalog,
        config: TidyConfig,
        classify: Classifier,
        *,
        enricher: ReceiptContextEnricher | None = None,
    ) -> None:
        self._store = store
        self._columns = columns
        self._catalog = catalog
        self._config = config
        self._classify = classify
        self._enricher = enricher

    # ---- request assembly ---------------------------------------------------

    def _receipt_context(self, rec: TransactionRecord) -> str | None:
        if self._enricher is None or rec.date is None:
            return None
        platform = match_platform(rec.original_description)
        if platform is None:
            return None
        text = self._enricher.fetch_context(
            rec.amount,
            rec.date,
            platform.receipt_domain,
            allow_date_fallback=platform.recurring,
        )
        return text or None

    def build_item(self, rec: TransactionRecord, matcher: HistoricalMatcher) -> ClassificationItem:
        key = normalize_description(
            rec.original_description or rec.description,
            max_tokens=self._config.match_key_tokens,
        )
        candidates = matcher.find_matches(
            key, limit=self._config.max_candidates, exclude_id=rec.transaction_id
        )
        return ClassificationItem(
            transaction_id=rec.transaction_id,
            original_description=rec.original_description or rec.description or None,
            transaction_date=rec.date,
            platform_order_details=self._receipt_context(rec),
            previous_transactions=tuple(candidates),
        )

    # ---- write-back ---------------------------------------------------------

    def _updated_values(self, rec: TransactionRecord, result: ClassificationResult) -> list[str]:
        cols = self._columns
        values = list(rec.values)
        if len(values) < cols.width:
            values.extend([""] * (cols.width - len(values)))
        description = (result.updated_description or "").strip()
        if description:
            values[cols.description] = description
        values[cols.category] = validate_category(
            result.category, self._catalog, self._config.fallback_category
        )
        if cols.ai_flag is not None:
            values[cols.ai_flag] = self._config.ai_flag_value
        return values

    def _apply(
        self,
        rows: Sequence[TransactionRecord],
        results: Sequence[ClassificationResult],
        summary: RunSummary,
        batch_index: int,
    ) -> None:
        pending = {r.transaction_id for r in rows}
        by_id: dict[str, ClassificationResult] = {}
        for res in results:
            if res.transaction_id not in pending:
                summary.results_ignored += 1
                _logger.warning(
                    "tidy:result_unknown_id batch_index=%d id=%s", batch_index, res.transaction_id
                )
                continue
            if res.transaction_id in by_id:
                summary.results_ignored += 1
                _logger.warning(
                    "tidy:result_duplicate_id batch_index=%d id=%s",
                    batch_index,
                    res.transaction_id,
                )
                continue
            by_id[res.transaction_id] = res

        for rec in rows:
            res = by_id.get(rec.transaction_id)
            if res is None:
                summary.rows_unanswered += 1
                _logger.info(
                    "tidy:row_unanswered batch_index=%d id=%s", batch_index, rec.transaction_id
                )
                continue
            if res.category not in self._catalog and res.category != self._config.fallback_category:
                summary.categories_replaced += 1
                _logger.info(
                    "tidy:category_replaced id=%s proposed=%r fallback=%r",
                    rec.transaction_id,
                    res.category,
                    self._config.fallback_category,
                )
            values = self._updated_values(rec, res)
            if self._config.dry_run:
                _logger.info(
                    "tidy:dry_run id=%s row_index=%d description=%r category=%r",
                    rec.transaction_id,
                    rec.row_index,
                    values[self._columns.description],
                    values[self._columns.category],
                )
                summary.rows_updated += 1
                summary.updated_ids.append(rec.transaction_id)
                continue
            try:
                self._store.write_row(self._config.transactions_sheet, rec.row_index, values)
            except Exception as e:  # noqa: BLE001 - one failed write must not abort the run
                summary.write_failures += 1
                _logger.error(
                    "tidy:write_failed id=%s row_index=%d error=%s detail=%s",
                    rec.transaction_id,
                    rec.row_index,
                    e.__class__.__name__,
                    e,
                )
                continue
            summary.rows_updated += 1
            summary.updated_ids.append(rec.transaction_id)

    # ---- driver -------------------------------------------------------------

    def run(
        self,
        selected: Sequence[TransactionRecord],
        history: Sequence[TransactionRecord],
        *,
        cancel_event: threading.Event | None = None,
        summary: RunSummary | None = None,
    ) -> RunSummary:
        """Process ``selected`` in batches; ``history`` is the labeled-row snapshot."""

        summary = summary if summary is not None else RunSummary()
        summary.rows_selected = len(selected)
        matcher = HistoricalMatcher(
            history,
            fallback_category=self._config.fallback_category,
            max_tokens=self._config.match_key_tokens,
        )

        for batch_index, rows in enumerate(chunk(selected, self._config.max_batch_size)):
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                _logger.warning("tidy:cancelled before batch_index=%d", batch_index)
                break
            summary.batches += 1
            _logger.info("tidy:batch_start batch_index=%d rows=%d", batch_index, len(rows))

            items = [self.build_item(rec, matcher) for rec in rows]
            try:
                results = self._classify(items)
            except Exception as e:  # noqa: BLE001 - oracle errors skip the batch only
                _logger.error(
                    "tidy:batch_failed batch_index=%d error=%s detail=%s",
                    batch_index,
                    e.__class__.__name__,
                    e,
                )
                results = None
            if results is None:
                summary.batches_failed += 1
                _logger.warning("tidy:batch_skipped batch_index=%d rows=%d", batch_index, len(rows))
                continue

            self._apply(rows, results, summary, batch_index)
            _logger.info(
                "tidy:batch_done batch_index=%d rows=%d results=%d",
                batch_index,
                len(rows),
                len(results),
            )
        return summary
