"""HTML parser for the Hacker News front page."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from . import NormalizedArticle, ParsingError, RecordParser

LOGGER = logging.getLogger(__name__)

HACKERNEWS_BASE_URL = "https://news.ycombinator.com"
_DEFAULT_AUTHOR = "Unknown"


class HackerNewsParser(RecordParser):
    """Parse the story table of a Hacker News listing page into articles."""

    _LEADING_INT_PATTERN = re.compile(r"^\s*(\d+)")

    def __init__(self, base_url: str = HACKERNEWS_BASE_URL) -> None:
        self._base_url = base_url

    def parse(self, payload: str, *, captured_at: datetime) -> list[NormalizedArticle]:
        soup = BeautifulSoup(payload, "html.parser")
        articles: list[NormalizedArticle] = []
        blocks = soup.select("tr.athing")
        for position, block in enumerate(blocks, start=1):
            try:
                articles.append(self._parse_block(block, position, captured_at))
            except ParsingError as exc:
                LOGGER.warning("Skipping item block %d: %s", position, exc)
        LOGGER.info("Parsed %d of %d item blocks", len(articles), len(blocks))
        return articles

    def _parse_block(self, block: Tag, position: int, captured_at: datetime) -> NormalizedArticle:
        title_tag = block.select_one(".titleline > a")
        if title_tag is None:
            raise ParsingError("title link not found")

        title = title_tag.get_text(strip=True)
        if not title:
            raise ParsingError("empty title")

        href = (title_tag.get("href") or "").strip()
        if not href:
            raise ParsingError(f"missing link for '{title}'")

        meta_row = block.find_next_sibling("tr")
        return NormalizedArticle(
            title=title,
            link=urljoin(self._base_url, href),
            score=self._extract_score(meta_row),
            comments=self._extract_comments(meta_row),
            author=self._extract_author(meta_row),
            rank=position,
            captured_at=captured_at,
            # The listing page carries no publish date
            published_at=captured_at,
        )

    def _leading_int(self, text: str) -> int:
        match = self._LEADING_INT_PATTERN.match(text)
        return int(match.group(1)) if match else 0

    def _extract_score(self, meta_row: Tag | None) -> int:
        if meta_row is None:
            return 0
        score_tag = meta_row.select_one(".score")
        if score_tag is None:
            return 0
        return self._leading_int(score_tag.get_text(" ", strip=True))

    def _extract_comments(self, meta_row: Tag | None) -> int:
        if meta_row is None:
            return 0
        links = meta_row.select('a[href*="item?id="]')
        if not links:
            return 0
        text = links[-1].get_text(" ", strip=True)
        if "comment" not in text:
            return 0
        return self._leading_int(text)

    def _extract_author(self, meta_row: Tag | None) -> str:
        if meta_row is None:
            return _DEFAULT_AUTHOR
        author_tag = meta_row.select_one(".hnuser")
        if author_tag is None:
            return _DEFAULT_AUTHOR
        return author_tag.get_text(strip=True) or _DEFAULT_AUTHOR


__all__ = ["HACKERNEWS_BASE_URL", "HackerNewsParser"]
