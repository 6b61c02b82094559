"""
Source Factory - Creates per-category feed sources from configuration.
"""
import logging
from typing import Dict, List

from core.errors import FeedUnavailable
from ingestion.base import FeedItem, FeedSource
from services.config import CategoryConfig

logger = logging.getLogger(__name__)


class CategoryFeeds:
    """
    All feeds configured for one category, fetched in configuration order.
    """

    def __init__(self, name: str, feed_urls: List[str], fetcher: FeedSource):
        self.name = name
        self.feed_urls = list(feed_urls)
        self.fetcher = fetcher

    async def fetch_items(self) -> List[FeedItem]:
        """
        Items of every reachable feed. An unavailable feed contributes zero items.
        """
        items: List[FeedItem] = []
        for url in self.feed_urls:
            try:
                items.extend(await self.fetcher.fetch(url))
            except FeedUnavailable as e:
                logger.warning(f"[{self.name}] Skipping feed: {e.message}", extra={"category": self.name})
        return items


def create_category_sources(
    categories: List[CategoryConfig],
    fetcher: FeedSource,
) -> Dict[str, CategoryFeeds]:
    """
    Create a CategoryFeeds for every configured category that has feeds.

    Args:
        categories: Category configurations
        fetcher: Shared feed fetcher

    Returns:
        Mapping of category name to its feed source
    """
    sources: Dict[str, CategoryFeeds] = {}

    for category in categories:
        if not category.feeds:
            logger.warning(f"Category '{category.name}' has no feeds, skipping")
            continue
        sources[category.name] = CategoryFeeds(category.name, category.feeds, fetcher)
        logger.debug(f"Created feed source for {category.name} ({len(category.feeds)} feeds)")

    return sources
