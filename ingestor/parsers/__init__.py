"""Parser interfaces and normalized record models for source ingestion."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, ClassVar


@dataclass(slots=True)
class NormalizedArticle:
    title: str
    link: str
    score: int
    comments: int
    author: str
    rank: int
    captured_at: datetime
    published_at: datetime | None = None

    identity_field: ClassVar[str] = "link"

    @property
    def identity(self) -> str:
        return self.link

    def fields(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class NormalizedQuote:
    name: str
    symbol: str
    price: float
    market_cap: float
    change_24h: float
    volume_24h: float
    rank: int
    position: int
    image: str
    captured_at: datetime

    identity_field: ClassVar[str] = "symbol"

    @property
    def identity(self) -> str:
        return self.symbol

    def fields(self) -> dict[str, Any]:
        return asdict(self)


NormalizedRecord = NormalizedArticle | NormalizedQuote


class ParsingError(RuntimeError):
    """Raised when a single source item cannot be normalized."""


class RecordParser:
    """Base interface for source-specific payload parsers."""

    def parse(self, payload: Any, *, captured_at: datetime) -> list[NormalizedRecord]:  # pragma: no cover - interface only
        raise NotImplementedError


__all__ = [
    "NormalizedArticle",
    "NormalizedQuote",
    "NormalizedRecord",
    "ParsingError",
    "RecordParser",
]
