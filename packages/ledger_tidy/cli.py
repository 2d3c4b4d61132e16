"""CLI for the ``ledger_tidy`` package.

Typer-based console interface. Environment variables (``OPENAI_API_KEY`` and
any ``LEDGER_TIDY_*`` overrides) are loaded from a local ``.env`` with
``python-dotenv`` before delegating to :mod:`ledger_tidy.api`.

Commands
--------
- ``tidy``: classify and write back the rows that need cleanup.
- ``pending``: list the rows ``tidy`` would send, without calling the model.
- ``normalize``: print the match key computed for a raw description.
"""

from __future__ import annotations

import os
import signal
import threading
from typing import Annotated

import typer
from dotenv import load_dotenv

from .config import ConfigurationError, TidyConfig, load_config
from .logging_setup import configure_logging
from .lock import RunLockedError, run_lock
from .normalize import normalize_description
from .store import CsvTableStore, TabularStore

app = typer.Typer(
    name="ledger-tidy",
    help="Clean up transaction descriptions and categories in a spreadsheet.",
    no_args_is_help=True,
    add_completion=False,
)


CsvDirOption = Annotated[
    str | None,
    typer.Option("--csv-dir", help="Directory holding <sheet>.csv files."),
]
SpreadsheetOption = Annotated[
    str | None,
    typer.Option("--spreadsheet-id", help="Google spreadsheet id."),
]
CredentialsOption = Annotated[
    str | None,
    typer.Option(
        "--credentials-file",
        help="Service-account key or authorized-user token for Google Sheets.",
        envvar="LEDGER_TIDY_SHEETS_CREDENTIALS",
    ),
]
LogLevelOption = Annotated[
    str | None,
    typer.Option("--log-level", help="Logging level (defaults to LEDGER_TIDY_LOG_LEVEL or INFO)."),
]


def _open_store(
    csv_dir: str | None, spreadsheet_id: str | None, credentials_file: str | None
) -> TabularStore:
    if bool(csv_dir) == bool(spreadsheet_id):
        raise ConfigurationError("pass exactly one of --csv-dir or --spreadsheet-id")
    if csv_dir:
        return CsvTableStore(csv_dir)
    from .sheets import GoogleSheetsStore

    if not credentials_file:
        raise ConfigurationError("--credentials-file is required with --spreadsheet-id")
    return GoogleSheetsStore(spreadsheet_id or "", credentials_file=credentials_file)


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


@app.command("tidy")
def tidy_cmd(
    csv_dir: CsvDirOption = None,
    spreadsheet_id: SpreadsheetOption = None,
    credentials_file: CredentialsOption = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Call the model but do not write back.")
    ] = False,
    batch_size: Annotated[
        int | None, typer.Option("--batch-size", min=1, help="Rows per model request.")
    ] = None,
    max_rows: Annotated[
        int | None, typer.Option("--max-rows", min=1, help="Process at most this many rows.")
    ] = None,
    receipts: Annotated[
        bool | None,
        typer.Option("--receipts/--no-receipts", help="Look up platform receipts in Gmail."),
    ] = None,
    gmail_token: Annotated[
        str | None,
        typer.Option("--gmail-token", help="Authorized-user token file for Gmail.",
                     envvar="LEDGER_TIDY_GMAIL_TOKEN"),
    ] = None,
    log_level: LogLevelOption = None,
) -> None:
    """Classify rows that need cleanup and write the results back."""

    load_dotenv(override=False)
    configure_logging(log_level)
    from .api import tidy_transactions

    try:
        config = load_config(
            dry_run=dry_run or None,
            max_batch_size=batch_size,
            max_rows=max_rows,
            enable_receipts=receipts,
        )
        store = _open_store(csv_dir, spreadsheet_id, credentials_file)
        enricher = _build_enricher(config, gmail_token)
    except ConfigurationError as e:
        _fail(str(e))
        return

    if not os.getenv("OPENAI_API_KEY"):
        _fail("OPENAI_API_KEY is not set in the environment.")

    cancel = threading.Event()

    def _request_stop(signum: int, frame: object) -> None:
        typer.echo("Stopping after the current batch...", err=True)
        cancel.set()

    previous = signal.signal(signal.SIGINT, _request_stop)
    try:
        with run_lock(store.lock_key):
            summary = tidy_transactions(
                store, config=config, enricher=enricher, cancel_event=cancel
            )
    except (ConfigurationError, RunLockedError) as e:
        _fail(str(e))
        return
    finally:
        signal.signal(signal.SIGINT, previous)

    typer.echo(
        f"rows={summary.rows_total} selected={summary.rows_selected} "
        f"updated={summary.rows_updated} unanswered={summary.rows_unanswered} "
        f"batches={summary.batches} failed_batches={summary.batches_failed} "
        f"write_failures={summary.write_failures}"
        + (" (cancelled)" if summary.cancelled else "")
        + (" (dry run)" if config.dry_run else "")
    )


def _build_enricher(config: TidyConfig, gmail_token: str | None):
    if not config.enable_receipts:
        return None
    if not gmail_token:
        raise ConfigurationError("receipt lookups need --gmail-token (or LEDGER_TIDY_GMAIL_TOKEN)")
    from .enrich import ReceiptContextEnricher
    from .gmail import GmailReceiptSearch, build_gmail_service

    search = GmailReceiptSearch(build_gmail_service(gmail_token))
    return ReceiptContextEnricher(search, snippet_chars=config.receipt_snippet_chars)


@app.command("pending")
def pending_cmd(
    csv_dir: CsvDirOption = None,
    spreadsheet_id: SpreadsheetOption = None,
    credentials_file: CredentialsOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """List rows that need cleanup as ``<row>\\t<id>\\t<match key>\\t<description>``."""

    load_dotenv(override=False)
    configure_logging(log_level)
    from .api import load_transactions, select_pending

    try:
        config = load_config()
        store = _open_store(csv_dir, spreadsheet_id, credentials_file)
        _columns, records = load_transactions(store, config)
    except ConfigurationError as e:
        _fail(str(e))
        return

    for rec in select_pending(records, config):
        key = normalize_description(
            rec.original_description or rec.description, max_tokens=config.match_key_tokens
        )
        typer.echo(f"{rec.row_index}\t{rec.transaction_id}\t{key}\t{rec.description}")


@app.command("normalize")
def normalize_cmd(
    description: Annotated[str, typer.Argument(help="Raw bank description.")],
    tokens: Annotated[int, typer.Option("--tokens", min=1, help="Words to keep.")] = 3,
) -> None:
    """Print the match key for DESCRIPTION."""

    typer.echo(normalize_description(description, max_tokens=tokens))


if __name__ == "__main__":  # pragma: no cover
    app()
