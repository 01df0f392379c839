"""Celery tasks for manual scrape and cleanup triggers."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from functools import lru_cache
from typing import Any

from celery import Task

from .celery_app import celery_app
from .config import IngestConfig
from .service import IngestionService, build_service
from .store import build_session_factory

LOGGER = logging.getLogger(__name__)


@lru_cache(maxsize=8)
def _session_factory(db_url: str):
    return build_session_factory(db_url)


def _build_service(source_slug: str | None, db_url: str | None) -> IngestionService:
    config = IngestConfig.from_env()
    if source_slug:
        config.source = source_slug
    if db_url:
        config.db_url = db_url
    if not config.db_url:
        raise ValueError("A database URL is required (pass db_url or set INGESTOR_DATABASE_URL)")
    return build_service(config, _session_factory(config.db_url))


@celery_app.task(name="ingestor.scrape_source", bind=True)
def scrape_source_task(self: Task, source_slug: str | None = None, db_url: str | None = None) -> dict[str, Any]:
    service = _build_service(source_slug, db_url)
    outcome = asyncio.run(service.perform_scraping())
    if outcome.success:
        LOGGER.info("Scrape task for %s completed: %s", service.source.slug, outcome.result.as_dict())
    else:
        LOGGER.warning("Scrape task for %s failed: %s", service.source.slug, outcome.message)
    return outcome.as_dict()


@celery_app.task(name="ingestor.cleanup_source", bind=True)
def cleanup_source_task(
    self: Task,
    source_slug: str | None = None,
    db_url: str | None = None,
    older_than_hours: float | None = None,
) -> dict[str, Any]:
    service = _build_service(source_slug, db_url)
    if older_than_hours is None:
        coroutine = service.perform_maintenance()
    else:
        coroutine = service.cleanup_old_records(timedelta(hours=older_than_hours))
    result = asyncio.run(coroutine)
    LOGGER.info("Cleanup task for %s marked %d rows inactive", service.source.slug, result.modified_count)
    return result.as_dict()


__all__ = ["cleanup_source_task", "scrape_source_task"]
