"""Parser for the CoinGecko ``/coins/markets`` JSON payload."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from . import NormalizedQuote, ParsingError, RecordParser

LOGGER = logging.getLogger(__name__)


def _number(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _rank(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class CoinGeckoMarketsParser(RecordParser):
    """Map market rows to quotes, recording each row's position in the payload."""

    def parse(self, payload: Any, *, captured_at: datetime) -> list[NormalizedQuote]:
        if not isinstance(payload, list):
            raise ParsingError(f"Expected a JSON array, got {type(payload).__name__}")

        quotes: list[NormalizedQuote] = []
        for position, item in enumerate(payload, start=1):
            try:
                quotes.append(self._parse_item(item, position, captured_at))
            except ParsingError as exc:
                LOGGER.warning("Skipping market row %d: %s", position, exc)
        return quotes

    def _parse_item(self, item: Any, position: int, captured_at: datetime) -> NormalizedQuote:
        if not isinstance(item, Mapping):
            raise ParsingError(f"row is {type(item).__name__}, not an object")

        symbol = str(item.get("symbol") or "").strip().upper()
        if not symbol:
            raise ParsingError("missing symbol")
        name = str(item.get("name") or "").strip()
        if not name:
            raise ParsingError(f"missing name for {symbol}")

        return NormalizedQuote(
            name=name,
            symbol=symbol,
            price=_number(item.get("current_price")),
            market_cap=_number(item.get("market_cap")),
            change_24h=_number(item.get("price_change_percentage_24h")),
            volume_24h=_number(item.get("total_volume")),
            rank=_rank(item.get("market_cap_rank")),
            position=position,
            image=str(item.get("image") or ""),
            captured_at=captured_at,
        )


__all__ = ["CoinGeckoMarketsParser"]
