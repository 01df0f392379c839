"""Per-source facade wiring the client, store, coordinator and sweeper."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Callable

import httpx
from sqlalchemy.orm import Session

from .clock import Clock, utcnow
from .config import IngestConfig
from .maintenance import RecordSweeper, SweepResult
from .persistence import IdentityPolicy, UpsertCoordinator
from .pipeline import ScrapeOutcome, ScrapePipeline
from .queries import RecordQueries
from .scheduler import IngestScheduler
from .sources import SourceDefinition, get_source_definition
from .store import RecordStore

LOGGER = logging.getLogger(__name__)


class IngestionService:
    """Operations exposed to the query API layer for one source."""

    def __init__(
        self,
        source: SourceDefinition,
        session_factory: Callable[[], Session],
        config: IngestConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.source = source
        self.store = RecordStore(session_factory, source.kind.model)
        policy = IdentityPolicy.for_kind(source.kind, timedelta(minutes=config.freshness_minutes))
        self.coordinator = UpsertCoordinator(self.store, policy, clock=clock)
        self.sweeper = RecordSweeper(self.store, clock=clock)
        self.pipeline = ScrapePipeline(source.build_client(config, transport=transport, clock=clock), self.coordinator)
        self.queries = RecordQueries(self.store, source.kind, clock=clock)

    async def perform_scraping(self) -> ScrapeOutcome:
        return await self.pipeline.run()

    async def cleanup_old_records(self, older_than: timedelta) -> SweepResult:
        return await self.sweeper.expire_older_than(older_than)

    async def cleanup_old_data(self, hours_old: float = 24) -> SweepResult:
        return await self.cleanup_old_records(timedelta(hours=hours_old))

    async def cleanup_old_articles(self, days_old: float = 7) -> SweepResult:
        return await self.cleanup_old_records(timedelta(days=days_old))

    async def perform_maintenance(self) -> SweepResult:
        return await self.cleanup_old_records(self.source.retention)

    async def get_stats(self) -> dict[str, Any]:
        return await self.queries.stats()


def build_service(
    config: IngestConfig,
    session_factory: Callable[[], Session],
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Clock = utcnow,
) -> IngestionService:
    source = get_source_definition(config.source)
    return IngestionService(source, session_factory, config, transport=transport, clock=clock)


def build_scheduler(service: IngestionService, config: IngestConfig) -> IngestScheduler:
    return IngestScheduler(
        service.perform_scraping,
        service.perform_maintenance,
        cleanup_schedule=service.source.cleanup_schedule,
        overlap_guard=config.schedule.overlap_guard,
    )


__all__ = ["IngestionService", "build_scheduler", "build_service"]
