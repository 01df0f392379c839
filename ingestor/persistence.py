"""Create-or-update persistence for normalized records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable

from .clock import Clock, utcnow
from .kinds import RecordKind
from .parsers import NormalizedRecord
from .store import PersistenceError, RecordStore

LOGGER = logging.getLogger(__name__)

DEFAULT_FRESHNESS_WINDOW = timedelta(minutes=5)


@dataclass(frozen=True, slots=True)
class ScrapeResult:
    saved: int = 0
    updated: int = 0
    skipped: int = 0
    total: int = 0

    @classmethod
    def empty(cls) -> "ScrapeResult":
        return cls()

    def as_dict(self) -> dict[str, int]:
        return {
            "saved": self.saved,
            "updated": self.updated,
            "skipped": self.skipped,
            "total": self.total,
        }


@dataclass(frozen=True, slots=True)
class IdentityPolicy:
    """Decides which stored row an incoming record replaces.

    Without a freshness window the identity key matches forever. With one,
    only rows captured inside the window match, so an older observation is
    kept as history and a new row is created.
    """

    field: str
    freshness_window: timedelta | None = None

    @classmethod
    def for_kind(cls, kind: RecordKind, freshness_window: timedelta = DEFAULT_FRESHNESS_WINDOW) -> "IdentityPolicy":
        return cls(kind.identity_field, freshness_window if kind.windowed else None)

    def lookup_criteria(self, model: type, record: NormalizedRecord, now: datetime) -> list[Any]:
        criteria = [getattr(model, self.field) == record.identity]
        if self.freshness_window is not None:
            criteria.append(model.captured_at >= now - self.freshness_window)
        return criteria


class UpsertCoordinator:
    """Upserts records one at a time, in order, tallying each outcome."""

    def __init__(self, store: RecordStore, policy: IdentityPolicy, *, clock: Clock = utcnow) -> None:
        self._store = store
        self._policy = policy
        self._clock = clock

    async def save(self, records: Iterable[NormalizedRecord]) -> ScrapeResult:
        records = list(records)
        # Raises StoreUnavailableError before any record is touched
        await self._store.ping()

        saved = updated = skipped = 0
        for record in records:
            try:
                created = await self._upsert(record)
            except PersistenceError as exc:
                LOGGER.warning("Skipping %s=%s: %s", self._policy.field, record.identity, exc)
                skipped += 1
                continue
            if created:
                saved += 1
            else:
                updated += 1

        result = ScrapeResult(saved=saved, updated=updated, skipped=skipped, total=len(records))
        LOGGER.info(
            "Saved %d, updated %d, skipped %d of %d records",
            result.saved,
            result.updated,
            result.skipped,
            result.total,
        )
        return result

    async def _upsert(self, record: NormalizedRecord) -> bool:
        model = self._store.model
        existing = await self._store.find_one(
            *self._policy.lookup_criteria(model, record, self._clock()),
            order_by=(model.captured_at.desc(),),
        )
        if existing is None:
            await self._store.insert(model(**record.fields(), is_active=True))
            return True

        for name, value in record.fields().items():
            if name == self._policy.field:
                continue
            setattr(existing, name, value)
        existing.is_active = True
        await self._store.save(existing)
        return False


__all__ = ["DEFAULT_FRESHNESS_WINDOW", "IdentityPolicy", "ScrapeResult", "UpsertCoordinator"]
