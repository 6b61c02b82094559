"""
Base classes for Ingestion
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class FeedItem(BaseModel):
    """
    One normalized feed entry. Immutable; downstream stages only read it.
    """
    model_config = ConfigDict(frozen=True)

    title: str
    link: str
    published_at: Optional[datetime] = None
    raw_content: str = ""
    snippet: str = ""
    enclosure_url: Optional[str] = None
    guid: Optional[str] = None
    source_label: str = ""
    categories: Tuple[str, ...] = ()

    @property
    def description(self) -> Optional[str]:
        """
        The feed-provided description, or None when the feed carried none.
        """
        text = self.snippet or self.raw_content
        return text if text else None


class FeedSource(ABC):
    """
    Base interface for all feed sources.
    """

    name: str

    @abstractmethod
    async def fetch(self, feed_url: str) -> List[FeedItem]:
        """
        Fetch and normalize one feed.
        Raises FeedUnavailable on non-2xx, malformed XML or timeout.
        """
        raise NotImplementedError
