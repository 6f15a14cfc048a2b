"""CLI: ask questions, load forecast batches, and inspect stored forecasts."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import uuid
from datetime import date
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from .ask import AskFailure, AskService, AskSuccess
from .config import Settings, load_settings
from .dates import utc_today
from .exceptions import ConfigError, DatabaseError, JournalError
from .journal import AskJournal
from .llm.client import LLMClient
from .log_setup import setup_logger
from .ratelimit import InMemoryCounterStore, RateLimiter
from .records import normalize_forecast_batch
from .store import SQLiteForecastStore


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Answer natural-language questions about Isle of Man weather forecasts."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    ask_parser = subparsers.add_parser("ask", help="Ask a weather question.")
    ask_parser.add_argument("question", type=str, help="Question text.")
    ask_parser.add_argument(
        "--caller",
        type=str,
        default="cli",
        help=(
            "Caller identifier used for rate limiting. Counters live in memory, "
            "so the limit does not carry over between CLI runs."
        ),
    )
    ask_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the response payload as JSON instead of a table.",
    )

    load_parser = subparsers.add_parser("load", help="Load a JSON list of parsed feed items.")
    load_parser.add_argument("file", type=Path, help="Path to a JSON array of feed items.")

    forecasts_parser = subparsers.add_parser("forecasts", help="List stored forecasts.")
    forecasts_parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Show every issuance for this YYYY-MM-DD date instead of upcoming days.",
    )
    return parser.parse_args(argv)


def _ensure_sqlite_parent(database_url: str) -> None:
    prefix = "sqlite:///"
    if database_url.startswith(prefix) and database_url not in ("sqlite:///:memory:",):
        Path(database_url[len(prefix):]).parent.mkdir(parents=True, exist_ok=True)


def _open_store(settings: Settings, logger: logging.Logger) -> SQLiteForecastStore:
    _ensure_sqlite_parent(settings.database_url)
    store = SQLiteForecastStore(settings.database_url, logger)
    store.create_schema()
    return store


def _print_answer(console: Console, response: AskSuccess) -> None:
    console.print(response.answer, markup=False)
    if not response.citations:
        return
    table = Table(title=f"Citations ({response.query_type})")
    table.add_column("Date")
    table.add_column("Published (UTC)")
    table.add_column("Temp")
    table.add_column("Description", overflow="fold")
    for citation in response.citations:
        temp = (
            f"{citation.min_temp}-{citation.max_temp}°C"
            if citation.min_temp is not None and citation.max_temp is not None
            else "-"
        )
        table.add_row(
            citation.forecast_date,
            citation.published_at,
            temp,
            citation.description or "-",
        )
    console.print(table)


def _print_forecasts(console: Console, rows: list[dict[str, Any]], title: str) -> None:
    if not rows:
        console.print("No forecasts found.")
        return
    table = Table(title=title)
    table.add_column("Date")
    table.add_column("Published (UTC)")
    table.add_column("Min")
    table.add_column("Max")
    table.add_column("Wind")
    table.add_column("Rainfall")
    table.add_column("Description", overflow="fold")
    for row in rows:
        wind = " ".join(
            part
            for part in [
                f"{row['wind_speed']}mph" if row.get("wind_speed") is not None else None,
                row.get("wind_direction"),
            ]
            if part
        )
        table.add_row(
            str(row["forecast_date"]),
            str(row["published_at"]),
            "-" if row.get("min_temp") is None else str(row["min_temp"]),
            "-" if row.get("max_temp") is None else str(row["max_temp"]),
            wind or "-",
            row.get("rainfall") or "-",
            row.get("description") or "-",
        )
    console.print(table)


def _run_ask(
    args: argparse.Namespace,
    settings: Settings,
    logger: logging.Logger,
    console: Console,
    journal: AskJournal,
) -> int:
    with _open_store(settings, logger) as store, LLMClient(
        settings.llm_config(), settings.llm_api_key, logger
    ) as llm:
        service = AskService(
            llm=llm,
            store=store,
            rate_limiter=RateLimiter(
                settings.rate_limit_config(), InMemoryCounterStore(), logger
            ),
            logger=logger,
            journal=journal,
            max_citations=settings.max_citations,
        )
        response = service.ask({"question": args.question}, args.caller)

    if args.json:
        console.print_json(json.dumps(response.to_payload(), ensure_ascii=False))
    elif isinstance(response, AskSuccess):
        _print_answer(console, response)
    else:
        console.print(f"{response.error}: {response.message}", markup=False)
    return 1 if isinstance(response, AskFailure) else 0


def _run_load(
    args: argparse.Namespace,
    settings: Settings,
    logger: logging.Logger,
    console: Console,
    journal: AskJournal,
) -> int:
    try:
        items = json.loads(args.file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error("Could not read feed items from %s: %s", args.file, exc)
        return 1
    if not isinstance(items, list):
        logger.error("Feed file must contain a JSON array of items.")
        return 1

    records, skipped = normalize_forecast_batch(items, logger)
    with _open_store(settings, logger) as store:
        inserted = store.insert_records(records)
    journal.write_event(
        "forecasts_loaded",
        payload={
            "source": str(args.file),
            "items": len(items),
            "inserted": inserted,
            "skipped": skipped,
        },
    )
    console.print(
        f"items={len(items)} inserted={inserted} "
        f"duplicates={len(records) - inserted} skipped={skipped}"
    )
    return 0


def _run_forecasts(
    args: argparse.Namespace,
    settings: Settings,
    logger: logging.Logger,
    console: Console,
) -> int:
    with _open_store(settings, logger) as store:
        if args.date is not None:
            rows = store.forecasts_for_date(args.date)
            title = f"Issuances for {args.date.isoformat()}"
        else:
            rows = store.future_forecasts(utc_today())
            title = "Upcoming forecasts"
        latest = store.latest_published_at()
    _print_forecasts(console, rows, title)
    console.print(f"latest_published_at={latest or '-'}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run one CLI command."""
    args = parse_args(argv)
    console = Console()

    try:
        settings = load_settings()
    except ConfigError as exc:
        setup_logger().error("Configuration failure: %s", exc)
        return 2

    logger = setup_logger(level=settings.log_level)
    session_id = uuid.uuid4().hex[:12]
    try:
        journal = AskJournal(
            journal_dir=settings.journal_dir,
            raw_payload_dir=settings.raw_payload_dir,
            session_id=session_id,
        )
        journal.write_event("startup", payload=settings.safe_summary())
    except (JournalError, OSError) as exc:
        logger.error("Failed to initialize journal: %s", exc)
        return 2

    try:
        if args.command == "ask":
            return _run_ask(args, settings, logger, console, journal)
        if args.command == "load":
            return _run_load(args, settings, logger, console, journal)
        return _run_forecasts(args, settings, logger, console)
    except (DatabaseError, JournalError) as exc:
        logger.error("Run failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
