"""Read-side helpers for the query API: listings, search and stats.

Every query filters on ``is_active``; expired rows stay in the table for
auditing but are never listed.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy import or_

from .clock import Clock, start_of_day, utcnow
from .kinds import RecordKind
from .store import RecordStore

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True, slots=True)
class Page:
    items: list[Any]
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int

    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.current_page > 1

    def pagination(self) -> dict[str, Any]:
        return {
            "current_page": self.current_page,
            "total_pages": self.total_pages,
            "total_items": self.total_items,
            "items_per_page": self.items_per_page,
            "has_next_page": self.has_next_page,
            "has_prev_page": self.has_prev_page,
        }


class RecordQueries:
    def __init__(self, store: RecordStore, kind: RecordKind, *, clock: Clock = utcnow) -> None:
        self._store = store
        self._kind = kind
        self._clock = clock

    def _active(self) -> list[Any]:
        return [self._kind.model.is_active.is_(True)]

    def _search(self, search: str) -> Any:
        pattern = f"%{search}%"
        return or_(*(self._kind.column(name).ilike(pattern) for name in self._kind.search_fields))

    def _ranking(self) -> tuple[Any, Any]:
        column = self._kind.column(self._kind.ranking_field)
        order = column.desc() if self._kind.ranking_desc else column.asc()
        return column > 0, order

    def _latest_order(self) -> tuple[Any, ...]:
        model = self._kind.model
        return (model.captured_at.desc(), self._kind.column(self._kind.order_field).asc())

    async def paginate(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        *,
        search: str = "",
        sort_by: str | None = None,
        sort_order: str = "desc",
    ) -> Page:
        page = max(1, page)
        limit = min(max(1, limit), MAX_PAGE_SIZE)

        criteria = self._active()
        if search.strip():
            criteria.append(self._search(search.strip()))

        if sort_by and self._kind.has_column(sort_by):
            column = self._kind.column(sort_by)
            order_by: tuple[Any, ...] = (column.asc() if sort_order == "asc" else column.desc(),)
        else:
            order_by = self._latest_order()

        items = await self._store.find(*criteria, order_by=order_by, limit=limit, offset=(page - 1) * limit)
        total = await self._store.count(*criteria)
        return Page(
            items=items,
            current_page=page,
            total_pages=math.ceil(total / limit),
            total_items=total,
            items_per_page=limit,
        )

    async def latest(self, limit: int = 50) -> list[Any]:
        return await self._store.find(*self._active(), order_by=self._latest_order(), limit=limit)

    async def recent(self, hours: int = 24, limit: int = 10) -> list[Any]:
        cutoff = self._clock() - timedelta(hours=hours)
        return await self._store.find(
            *self._active(),
            self._kind.model.captured_at >= cutoff,
            order_by=self._latest_order(),
            limit=limit,
        )

    async def top(self, limit: int = 10, *, days: int | None = None) -> list[Any]:
        criterion, order = self._ranking()
        criteria = [*self._active(), criterion]
        if days is not None:
            criteria.append(self._kind.model.captured_at >= self._clock() - timedelta(days=days))
        return await self._store.find(
            *criteria,
            order_by=(order, self._kind.model.captured_at.desc()),
            limit=limit,
        )

    async def by_key(self, key: str) -> Any | None:
        identity = self._kind.column(self._kind.identity_field)
        return await self._store.find_one(
            *self._active(),
            identity == self._kind.key_normalizer(key),
            order_by=(self._kind.model.captured_at.desc(),),
        )

    async def stats(self) -> dict[str, Any]:
        model = self._kind.model
        today = start_of_day(self._clock())

        total = await self._store.count(*self._active())
        today_count = await self._store.count(*self._active(), model.captured_at >= today)
        last = await self._store.find_one(*self._active(), order_by=(model.captured_at.desc(),))
        featured = await self.top(1)

        stats: dict[str, Any] = {
            "total": total,
            "today_count": today_count,
            "last_captured_at": last.captured_at if last is not None else None,
            "top_or_featured": (
                {name: getattr(featured[0], name) for name in self._kind.featured_fields}
                if featured
                else None
            ),
        }
        if self._kind.average_field:
            column = self._kind.column(self._kind.average_field)
            average = await self._store.average(column, *self._active(), column > 0)
            stats[f"average_{self._kind.average_field}"] = round(average) if average is not None else 0
        return stats


__all__ = ["DEFAULT_PAGE_SIZE", "MAX_PAGE_SIZE", "Page", "RecordQueries"]
