"""Async record store over SQLAlchemy sessions."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Sequence, TypeVar

from sqlalchemy import create_engine, func, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from models import Base

LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

_ENGINE_OPTIONS = {
    "pool_pre_ping": True,
    "pool_recycle": 1800,
}


class PersistenceError(RuntimeError):
    """Raised when a store operation fails."""


class StoreUnavailableError(PersistenceError):
    """Raised when the store cannot be reached at all."""


def build_engine(db_url: str) -> Engine:
    if db_url.startswith("sqlite"):
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise each thread sees its own empty database
            options["poolclass"] = StaticPool
        return create_engine(db_url, **options)
    return create_engine(db_url, **_ENGINE_OPTIONS)


def build_session_factory(db_url: str, *, create_schema: bool = True) -> sessionmaker:
    engine = build_engine(db_url)
    if create_schema:
        Base.metadata.create_all(engine)  # ensure required tables exist before queries
    return sessionmaker(bind=engine, expire_on_commit=False)


class RecordStore:
    """Find/insert/update primitives for one mapped model.

    Each call opens its own session and commits before returning, so every
    write is its own transaction. Blocking session work runs on a worker
    thread to keep the event loop free.
    """

    def __init__(self, session_factory: Callable[[], Session], model: type) -> None:
        self._session_factory = session_factory
        self._model = model

    @property
    def model(self) -> type:
        return self._model

    async def _run(self, operation: Callable[[Session], _T], description: str) -> _T:
        return await asyncio.to_thread(self._run_sync, operation, description)

    def _run_sync(self, operation: Callable[[Session], _T], description: str) -> _T:
        try:
            with self._session_factory() as session:
                return operation(session)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{description} failed for {self._model.__tablename__}: {exc}") from exc

    async def ping(self) -> None:
        try:
            await self._run(lambda session: session.execute(text("SELECT 1")), "ping")
        except PersistenceError as exc:
            raise StoreUnavailableError(str(exc)) from exc

    async def find_one(self, *criteria: Any, order_by: Sequence[Any] = ()) -> Any | None:
        def _find_one(session: Session):
            return session.query(self._model).filter(*criteria).order_by(*order_by).first()

        return await self._run(_find_one, "find_one")

    async def find(
        self,
        *criteria: Any,
        order_by: Sequence[Any] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Any]:
        def _find(session: Session):
            query = session.query(self._model).filter(*criteria).order_by(*order_by)
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all()

        return await self._run(_find, "find")

    async def count(self, *criteria: Any) -> int:
        return await self._run(
            lambda session: session.query(self._model).filter(*criteria).count(),
            "count",
        )

    async def average(self, column: Any, *criteria: Any) -> float | None:
        def _average(session: Session):
            value = session.query(func.avg(column)).filter(*criteria).scalar()
            return float(value) if value is not None else None

        return await self._run(_average, "average")

    async def insert(self, record: Any) -> Any:
        def _insert(session: Session):
            session.add(record)
            session.commit()
            session.refresh(record)
            return record

        return await self._run(_insert, "insert")

    async def save(self, record: Any) -> Any:
        """Persist changes made to a previously loaded record."""

        def _save(session: Session):
            merged = session.merge(record)
            session.commit()
            session.refresh(merged)
            return merged

        return await self._run(_save, "save")

    async def update_many(self, criteria: Iterable[Any], values: dict[str, Any]) -> int:
        criteria = tuple(criteria)

        def _update(session: Session):
            modified = (
                session.query(self._model)
                .filter(*criteria)
                .update(values, synchronize_session=False)
            )
            session.commit()
            return modified

        return await self._run(_update, "update_many")


__all__ = [
    "PersistenceError",
    "RecordStore",
    "StoreUnavailableError",
    "build_engine",
    "build_session_factory",
]
