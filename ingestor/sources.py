"""Source clients and the registry of supported sources."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Mapping, TYPE_CHECKING

import httpx

from .clock import Clock, utcnow
from .http_client import FetchError, HttpFetcher
from .kinds import ARTICLE_KIND, ASSET_QUOTE_KIND, RecordKind
from .parsers import NormalizedRecord, ParsingError, RecordParser
from .parsers.coingecko import CoinGeckoMarketsParser
from .parsers.hackernews import HACKERNEWS_BASE_URL, HackerNewsParser

if TYPE_CHECKING:
    from .config import IngestConfig

LOGGER = logging.getLogger(__name__)

COINGECKO_MARKETS_URL = "https://api.coingecko.com/api/v3/coins/markets"

_HTML_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}
_JSON_HEADERS = {"Accept": "application/json"}


class SourceClient:
    """Fetches one payload from a source and normalizes it into records."""

    def __init__(
        self,
        url: str,
        parser: RecordParser,
        *,
        user_agent: str,
        timeout: float,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.url = url
        self._parser = parser
        self._user_agent = user_agent
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._transport = transport
        self._clock = clock

    def _build_fetcher(self) -> HttpFetcher:
        return HttpFetcher(
            user_agent=self._user_agent,
            timeout=self._timeout,
            headers=self._headers,
            transport=self._transport,
        )

    async def _fetch_payload(self, fetcher: HttpFetcher) -> Any:  # pragma: no cover - interface only
        raise NotImplementedError

    async def fetch(self) -> list[NormalizedRecord]:
        async with self._build_fetcher() as fetcher:
            payload = await self._fetch_payload(fetcher)

        # One capture time per fetch keeps the batch's page order sortable
        captured_at = self._clock()
        try:
            records = self._parser.parse(payload, captured_at=captured_at)
        except ParsingError as exc:
            raise FetchError(f"Malformed payload from {self.url}: {exc}", cause=exc) from exc
        LOGGER.info("Fetched %d records from %s", len(records), self.url)
        return records


class HtmlSourceClient(SourceClient):
    async def _fetch_payload(self, fetcher: HttpFetcher) -> str:
        return await fetcher.fetch_html(self.url)


class JsonApiSourceClient(SourceClient):
    def __init__(self, url: str, parser: RecordParser, *, params: Mapping[str, Any] | None = None, **kwargs) -> None:
        super().__init__(url, parser, **kwargs)
        self._params = dict(params or {})

    async def _fetch_payload(self, fetcher: HttpFetcher) -> Any:
        return await fetcher.fetch_json(self.url, params=self._params)


ClientFactory = Callable[..., SourceClient]


def build_hackernews_client(
    config: "IngestConfig",
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Clock = utcnow,
) -> SourceClient:
    return HtmlSourceClient(
        HACKERNEWS_BASE_URL,
        HackerNewsParser(HACKERNEWS_BASE_URL),
        user_agent=config.user_agent,
        timeout=timeout,
        headers=_HTML_HEADERS,
        transport=transport,
        clock=clock,
    )


def build_coingecko_client(
    config: "IngestConfig",
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Clock = utcnow,
) -> SourceClient:
    params = {
        "vs_currency": config.market_currency,
        "order": "market_cap_desc",
        "per_page": config.market_page_size,
        "page": 1,
        "sparkline": "false",
        "price_change_percentage": "24h",
    }
    return JsonApiSourceClient(
        COINGECKO_MARKETS_URL,
        CoinGeckoMarketsParser(),
        params=params,
        user_agent=config.user_agent,
        timeout=timeout,
        headers=_JSON_HEADERS,
        transport=transport,
        clock=clock,
    )


@dataclass(slots=True)
class SourceDefinition:
    """Configuration for a supported data source."""

    slug: str
    kind: RecordKind
    client_factory: ClientFactory
    default_schedule: str
    cleanup_schedule: str
    retention: timedelta
    default_timeout: float

    def build_client(
        self,
        config: "IngestConfig",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock = utcnow,
    ) -> SourceClient:
        """Instantiate the client for this source."""

        timeout = config.timeout.request_timeout or self.default_timeout
        return self.client_factory(config, timeout=timeout, transport=transport, clock=clock)


_SOURCE_REGISTRY: Dict[str, SourceDefinition] = {
    "hackernews": SourceDefinition(
        slug="hackernews",
        kind=ARTICLE_KIND,
        client_factory=build_hackernews_client,
        default_schedule="*/30 * * * *",
        cleanup_schedule="0 2 * * *",
        retention=timedelta(days=7),
        default_timeout=10.0,
    ),
    "coingecko": SourceDefinition(
        slug="coingecko",
        kind=ASSET_QUOTE_KIND,
        client_factory=build_coingecko_client,
        default_schedule="0 * * * *",
        cleanup_schedule="0 3 * * *",
        retention=timedelta(hours=24),
        default_timeout=15.0,
    ),
}


def get_source_definition(source_slug: str) -> SourceDefinition:
    """Return the registered source definition for the given slug."""

    try:
        return _SOURCE_REGISTRY[source_slug]
    except KeyError as exc:
        raise KeyError(f"Unknown source '{source_slug}'") from exc


def list_sources() -> list[str]:
    """Return a sorted list of supported source slugs."""

    return sorted(_SOURCE_REGISTRY)


__all__ = [
    "COINGECKO_MARKETS_URL",
    "HtmlSourceClient",
    "JsonApiSourceClient",
    "SourceClient",
    "SourceDefinition",
    "build_coingecko_client",
    "build_hackernews_client",
    "get_source_definition",
    "list_sources",
]
