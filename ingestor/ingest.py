"""Command-line entrypoint for scheduled source ingestion."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from typing import Mapping, Sequence

from .config import IngestConfig
from .scheduler import IngestScheduler
from .service import IngestionService, build_scheduler, build_service
from .sources import get_source_definition, list_sources
from .store import build_session_factory

LOGGER = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    available_sources = list_sources()
    if not available_sources:
        raise RuntimeError("No sources registered for ingestion")

    parser = argparse.ArgumentParser(description="Scrape a source on a schedule and upsert its records")
    parser.add_argument(
        "--source",
        choices=available_sources,
        default=None,
        help="Slug of the source to ingest (default: $INGESTOR_SOURCE or hackernews)",
    )
    parser.add_argument("--db-url", type=str, default=None, help="SQLAlchemy database URL")
    parser.add_argument(
        "--schedule",
        type=str,
        default=None,
        help="Five-field cron expression (UTC) for the scrape job (defaults to the source's schedule)",
    )
    parser.add_argument("--user-agent", type=str, default=None, help="Override the outbound User-Agent")
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=None,
        help="Seconds before the outbound fetch times out (defaults to the source's timeout)",
    )
    parser.add_argument(
        "--freshness-minutes",
        type=float,
        default=None,
        help="Window in which a repeat asset quote updates the stored row instead of adding one",
    )
    parser.add_argument(
        "--overlap-guard",
        action="store_true",
        help="Skip a scheduled firing while the previous run of the same job is still in progress",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Run a single scrape and exit")
    mode.add_argument("--cleanup", action="store_true", help="Run the retention sweep once and exit")
    mode.add_argument("--stats", action="store_true", help="Print record statistics and exit")
    parser.add_argument(
        "--run-on-start",
        action="store_true",
        help="Trigger one scrape immediately after the scheduler starts",
    )
    return parser


def configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def build_config(args: argparse.Namespace, env: Mapping[str, str] | None = None) -> IngestConfig:
    config = IngestConfig.from_env(os.environ if env is None else env)
    if args.source:
        config.source = args.source
    if args.db_url:
        config.db_url = args.db_url
    if args.user_agent:
        config.user_agent = args.user_agent
    if args.request_timeout and args.request_timeout > 0:
        config.timeout.request_timeout = args.request_timeout
    if args.freshness_minutes and args.freshness_minutes > 0:
        config.freshness_minutes = args.freshness_minutes
    if args.schedule:
        config.schedule.scrape_schedule = args.schedule
    if args.overlap_guard:
        config.schedule.overlap_guard = True

    source = get_source_definition(config.source)
    if not config.schedule.scrape_schedule:
        config.schedule.scrape_schedule = source.default_schedule
    return config


async def serve(scheduler: IngestScheduler, schedule: str, *, run_on_start: bool = False) -> None:
    """Run the scheduler until the surrounding task is cancelled."""

    scheduler.start(schedule)
    try:
        if run_on_start:
            outcome = await scheduler.trigger_now()
            LOGGER.info("Startup scrape finished: %s", outcome.as_dict())
        await asyncio.Event().wait()
    finally:
        scheduler.stop()


async def _run_command(args: argparse.Namespace, config: IngestConfig, service: IngestionService) -> int:
    if args.once:
        outcome = await service.perform_scraping()
        print(json.dumps(outcome.as_dict(), indent=2))
        return 0 if outcome.success else 1
    if args.cleanup:
        result = await service.perform_maintenance()
        print(json.dumps(result.as_dict(), indent=2))
        return 0
    if args.stats:
        stats = await service.get_stats()
        print(json.dumps(stats, indent=2, default=str))
        return 0

    scheduler = build_scheduler(service, config)
    await serve(scheduler, config.schedule.scrape_schedule, run_on_start=args.run_on_start)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    configure_logging()
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except KeyError as exc:
        parser.error(str(exc))

    if not config.db_url:
        parser.error("--db-url or INGESTOR_DATABASE_URL is required")

    session_factory = build_session_factory(config.db_url)
    service = build_service(config, session_factory)
    LOGGER.info("Ingesting source %s as %s records", config.source, service.source.kind.name)

    try:
        return asyncio.run(_run_command(args, config, service))
    except ValueError as exc:
        parser.error(str(exc))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted; scheduler stopped")
        return 0


__all__ = ["build_arg_parser", "build_config", "configure_logging", "main", "serve"]


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
