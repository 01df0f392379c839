"""Scheduled scrape-and-upsert ingestion for article and market-data sources."""

from .pipeline import ScrapeOutcome, ScrapePipeline
from .scheduler import IngestScheduler
from .service import IngestionService, build_scheduler, build_service

__all__ = [
    "IngestScheduler",
    "IngestionService",
    "ScrapeOutcome",
    "ScrapePipeline",
    "build_scheduler",
    "build_service",
]
