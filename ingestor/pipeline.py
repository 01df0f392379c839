"""Scrape-and-save runs: fetch, then upsert, reported as one outcome."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .http_client import FetchError
from .persistence import ScrapeResult, UpsertCoordinator
from .sources import SourceClient
from .store import PersistenceError

LOGGER = logging.getLogger(__name__)

NO_RECORDS_MESSAGE = "no records found"
COMPLETED_MESSAGE = "completed"


@dataclass(frozen=True, slots=True)
class ScrapeOutcome:
    success: bool
    message: str
    result: ScrapeResult = field(default_factory=ScrapeResult.empty)

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "result": self.result.as_dict(),
        }


class ScrapePipeline:
    """Runs one source fetch into the coordinator.

    Holds no state between runs. Fetch failures and store outages come back
    as unsuccessful outcomes; anything else propagates.
    """

    def __init__(self, source: SourceClient, coordinator: UpsertCoordinator) -> None:
        self._source = source
        self._coordinator = coordinator

    async def run(self) -> ScrapeOutcome:
        LOGGER.info("Starting scrape of %s", self._source.url)
        try:
            records = await self._source.fetch()
        except FetchError as exc:
            LOGGER.error("Scrape of %s failed: %s", self._source.url, exc)
            return ScrapeOutcome(success=False, message=f"fetch failed: {exc}")

        if not records:
            LOGGER.warning("Scrape of %s returned no records", self._source.url)
            return ScrapeOutcome(success=False, message=NO_RECORDS_MESSAGE)

        try:
            result = await self._coordinator.save(records)
        except PersistenceError as exc:
            LOGGER.error("Saving %d records failed: %s", len(records), exc)
            return ScrapeOutcome(success=False, message=f"save failed: {exc}")

        return ScrapeOutcome(success=True, message=COMPLETED_MESSAGE, result=result)


__all__ = ["COMPLETED_MESSAGE", "NO_RECORDS_MESSAGE", "ScrapeOutcome", "ScrapePipeline"]
