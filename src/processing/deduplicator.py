import logging

from services.repository import ARTICLES, ArticleRepository

logger = logging.getLogger(__name__)


class DuplicateDetector:
    """
    Repository-backed check on the canonical source URL (the feed item's link).
    """

    def __init__(self, repository: ArticleRepository):
        self.repository = repository

    async def exists(self, source_url: str) -> bool:
        matches = await self.repository.find_by_filter(ARTICLES, {"source_url": source_url})
        if matches:
            logger.debug(f"Already stored: {source_url}")
            return True
        return False
