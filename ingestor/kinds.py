"""Record kinds: which table a source writes to and how its rows are keyed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from models import Article, AssetQuote


def _identity(value: str) -> str:
    return value.strip()


def _upper(value: str) -> str:
    return value.strip().upper()


@dataclass(frozen=True, slots=True)
class RecordKind:
    """Storage and query metadata for one kind of normalized record."""

    name: str
    model: type
    identity_field: str
    # True when repeat observations only merge inside the freshness window
    windowed: bool
    search_fields: tuple[str, ...]
    ranking_field: str
    ranking_desc: bool
    featured_fields: tuple[str, ...]
    # Column holding the record's position within its fetch
    order_field: str
    average_field: str | None = None
    key_normalizer: Callable[[str], str] = _identity

    def column(self, name: str):
        return getattr(self.model, name)

    def has_column(self, name: str) -> bool:
        return name in self.model.__table__.columns


ARTICLE_KIND = RecordKind(
    name="article",
    model=Article,
    identity_field="link",
    windowed=False,
    search_fields=("title", "author"),
    ranking_field="score",
    ranking_desc=True,
    featured_fields=("title", "link", "score"),
    order_field="rank",
    average_field="score",
)

ASSET_QUOTE_KIND = RecordKind(
    name="asset_quote",
    model=AssetQuote,
    identity_field="symbol",
    windowed=True,
    search_fields=("name", "symbol"),
    ranking_field="rank",
    ranking_desc=False,
    featured_fields=("name", "symbol", "price"),
    order_field="position",
    key_normalizer=_upper,
)


__all__ = ["ARTICLE_KIND", "ASSET_QUOTE_KIND", "RecordKind"]
