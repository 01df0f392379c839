"""HTTP utilities for fetching source payloads."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

LOGGER = logging.getLogger(__name__)


class FetchError(RuntimeError):
    """Raised when the outbound request to a source fails."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class HttpFetcher:
    """Single-request async HTTP client with a fixed identity and timeout."""

    def __init__(
        self,
        *,
        user_agent: str,
        timeout: float,
        headers: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._user_agent = user_agent
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._transport = transport
        self._client = client or self._build_client()
        self._owns_client = client is None

    def _build_client(self) -> httpx.AsyncClient:
        headers = {"User-Agent": self._user_agent, **self._headers}
        kwargs: dict[str, object] = {
            "timeout": self._timeout,
            "headers": headers,
            "follow_redirects": True,
        }
        if self._transport:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def get(self, url: str, *, params: Mapping[str, Any] | None = None) -> httpx.Response:
        try:
            response = await self._client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(f"Unexpected status {exc.response.status_code} for {url}", cause=exc) from exc
        except httpx.TimeoutException as exc:
            raise FetchError(f"Timed out after {self._timeout:.0f}s fetching {url}", cause=exc) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Request to {url} failed: {exc}", cause=exc) from exc
        LOGGER.debug("Fetched %s (%d bytes)", url, len(response.content))
        return response

    async def fetch_html(self, url: str) -> str:
        response = await self.get(url)
        content_type = response.headers.get("content-type", "")
        if "html" not in content_type:
            raise FetchError(f"Unsupported content type '{content_type}' for {url}")
        return response.text

    async def fetch_json(self, url: str, *, params: Mapping[str, Any] | None = None) -> Any:
        response = await self.get(url, params=params)
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(f"Malformed JSON payload from {url}", cause=exc) from exc

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(self, *_exc_info) -> None:
        await self.close()


__all__ = ["FetchError", "HttpFetcher"]
