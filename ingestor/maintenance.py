"""Soft expiry of records that fell out of the retention period."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from .clock import Clock, utcnow
from .store import RecordStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SweepResult:
    modified_count: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"modified_count": self.modified_count}


class RecordSweeper:
    """Marks stale records inactive instead of deleting them."""

    def __init__(self, store: RecordStore, *, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def expire_older_than(self, age: timedelta) -> SweepResult:
        if age < timedelta(0):
            raise ValueError("Retention age must not be negative")

        cutoff = self._clock() - age
        model = self._store.model
        modified = await self._store.update_many(
            (model.captured_at < cutoff, model.is_active.is_(True)),
            {"is_active": False},
        )
        LOGGER.info(
            "Marked %d %s rows captured before %s as inactive",
            modified,
            model.__tablename__,
            cutoff.isoformat(),
        )
        return SweepResult(modified_count=modified)


__all__ = ["RecordSweeper", "SweepResult"]
