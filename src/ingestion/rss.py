"""
Ingestion from RSS / Atom sources
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser
import httpx

from core.errors import FeedUnavailable
from extraction.markup import collapse_whitespace, strip_markup
from ingestion.base import FeedItem, FeedSource
from services.http import FEED_HEADERS
from services.retry import NO_RETRY, RetryPolicy

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")


def _parse_date(entry: Any) -> Optional[datetime]:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return datetime(*parsed[:6], tzinfo=timezone.utc)
    return None


def _enclosure_image(entry: Any) -> Optional[str]:
    for enclosure in entry.get("enclosures", []) or []:
        href = enclosure.get("href") or enclosure.get("url")
        kind = enclosure.get("type", "") or ""
        if href and (kind.startswith("image/") or href.lower().split("?")[0].endswith(IMAGE_EXTENSIONS)):
            return href

    for key in ("media_content", "media_thumbnail"):
        for media in entry.get(key, []) or []:
            url = media.get("url")
            if url and (media.get("medium") in (None, "image") or key == "media_thumbnail"):
                return url
    return None


def normalize_entry(entry: Any, source_label: str) -> Optional[FeedItem]:
    """
    Normalize a feedparser entry into a FeedItem. Entries without a title or link are dropped.
    """
    title = strip_markup(entry.get("title", "") or "")
    link = (entry.get("link") or "").strip()
    if not title or not link:
        return None

    raw_content = ""
    if entry.get("content"):
        raw_content = entry["content"][0].get("value", "") or ""
    summary = entry.get("summary", "") or ""
    if not raw_content:
        raw_content = summary

    source = entry.get("source") or {}
    label = source.get("title") if isinstance(source, dict) else None

    return FeedItem(
        title=title,
        link=link,
        published_at=_parse_date(entry),
        raw_content=raw_content,
        snippet=strip_markup(summary or raw_content),
        enclosure_url=_enclosure_image(entry),
        guid=entry.get("id") or link,
        source_label=collapse_whitespace(label or source_label),
        categories=tuple(t.get("term", "") for t in entry.get("tags", []) or [] if t.get("term")),
    )


class RSSFeedFetcher(FeedSource):
    """
    Fetch a feed over httpx, parse it with feedparser and normalize entries.
    """

    name = "rss"

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = 10.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.timeout = timeout
        self.retry_policy = retry_policy or NO_RETRY

    async def _get(self, feed_url: str) -> httpx.Response:
        response = await self.client.get(feed_url, headers=FEED_HEADERS, timeout=self.timeout)
        response.raise_for_status()
        return response

    async def fetch(self, feed_url: str) -> List[FeedItem]:
        try:
            response = await self.retry_policy.run(self._get, feed_url, description=f"feed {feed_url}")
        except httpx.HTTPStatusError as e:
            raise FeedUnavailable(feed_url, f"HTTP {e.response.status_code}") from e
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise FeedUnavailable(feed_url, "timeout") from e
        except httpx.HTTPError as e:
            raise FeedUnavailable(feed_url, f"{e.__class__.__name__}: {e}") from e

        parsed = feedparser.parse(response.content)

        if parsed.bozo and not parsed.entries:
            raise FeedUnavailable(feed_url, f"malformed feed: {parsed.get('bozo_exception')}")
        if parsed.bozo:
            logger.warning(f"Feed {feed_url} parsed with errors: {parsed.get('bozo_exception')}")

        source_label = parsed.feed.get("title", "") if parsed.get("feed") else ""

        items: List[FeedItem] = []
        for entry in parsed.entries:
            item = normalize_entry(entry, source_label)
            if item is None:
                logger.debug(f"Dropping feed entry without title or link from {feed_url}")
                continue
            items.append(item)

        logger.info(f"Fetched {len(items)} items from {feed_url}")
        return items
