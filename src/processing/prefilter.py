import logging
from typing import Iterable, List, Optional, Set, Tuple
from urllib.parse import urlparse

from ingestion.base import FeedItem

logger = logging.getLogger(__name__)

DEFAULT_BLOCKED_EXTENSIONS = (".pdf",)


def _points_to_document(value: str, blocked_extensions: Iterable[str]) -> bool:
    value = value.lower().strip()
    path = urlparse(value).path if value.startswith(("http://", "https://")) else value
    return any(path.endswith(ext) or value.endswith(ext) for ext in blocked_extensions)


def rejection_reason(
    item: FeedItem,
    *,
    min_title_length: int = 20,
    min_description_length: int = 50,
    blocked_extensions: Iterable[str] = DEFAULT_BLOCKED_EXTENSIONS,
) -> Optional[str]:
    """
    Why an item should be dropped before extraction, or None if it passes.
    A missing description is not disqualifying; a present-but-short one is.
    """
    blocked_extensions = tuple(blocked_extensions)

    if _points_to_document(item.link, blocked_extensions) or _points_to_document(item.title, blocked_extensions):
        return "non-article resource"

    if len(item.title.strip()) < min_title_length:
        return "title too short"

    description = item.description
    if description is not None and len(description.strip()) < min_description_length:
        return "description too short"

    return None


def passes_quality_filter(item: FeedItem, **thresholds) -> bool:
    """Cheap predicate applied before any network fetch of the source page."""
    return rejection_reason(item, **thresholds) is None


def filter_items(items: List[FeedItem], **thresholds) -> Tuple[List[FeedItem], int]:
    """
    Returns (kept items in feed order, number filtered out).
    """
    kept: List[FeedItem] = []
    for item in items:
        reason = rejection_reason(item, **thresholds)
        if reason:
            logger.debug(f"Filtered out '{item.title}': {reason}")
            continue
        kept.append(item)
    return kept, len(items) - len(kept)


class BatchSeen:
    """
    Links already claimed within one run; repeats are skipped.
    """

    def __init__(self):
        self._seen: Set[str] = set()

    def claim(self, link: str) -> bool:
        if link in self._seen:
            return False
        self._seen.add(link)
        return True
