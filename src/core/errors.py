"""
Exception hierarchy for the harvesting pipeline.
"""
from typing import Any, Dict, List, Optional


class HarvesterError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class FeedUnavailable(HarvesterError):
    """Raised when a feed cannot be fetched or parsed."""

    def __init__(self, feed_url: str, cause: str):
        super().__init__(f"Feed unavailable: {feed_url} ({cause})", {"feed_url": feed_url})
        self.feed_url = feed_url
        self.cause = cause


class ExtractionExhausted(HarvesterError):
    """Raised when every extraction strategy failed for an item."""

    def __init__(self, source_url: str):
        super().__init__(f"All extraction strategies failed for {source_url}")
        self.source_url = source_url


class RewriteFailed(HarvesterError):
    """Raised when the rewrite service call or its response is unusable."""


class PersistenceFailure(HarvesterError):
    """Raised when the repository rejects a write."""


class DuplicateArticle(PersistenceFailure):
    """Raised when the repository already holds an article with the same source URL."""

    def __init__(self, source_url: str):
        super().__init__(f"Article already stored: {source_url}", {"source_url": source_url})
        self.source_url = source_url


class RepositoryLookupFailure(HarvesterError):
    """Raised when a category or author required for a run cannot be resolved."""

    def __init__(self, collection: str, name: str):
        super().__init__(f"{collection} not found: {name}", {"collection": collection, "name": name})
        self.collection = collection
        self.name = name


class UnknownCategory(HarvesterError):
    """Raised when a caller asks for a category that has no configured feeds."""

    def __init__(self, category: str, available: List[str]):
        super().__init__(
            f"Invalid category: {category}. Available categories: {', '.join(available)}",
            {"category": category},
        )
        self.category = category
        self.available = available


class UnknownJob(HarvesterError):
    """Raised when a trigger names a job that is not configured."""

    def __init__(self, job_name: str, available: List[str]):
        super().__init__(
            f"Unknown job: {job_name}. Available jobs: {', '.join(available)}",
            {"job": job_name},
        )
        self.job_name = job_name
        self.available = available


class JobAlreadyRunning(HarvesterError):
    """Raised when a manual trigger hits a job that is still in flight."""

    def __init__(self, job_name: str):
        super().__init__(f"Import job {job_name} is already running", {"job": job_name})
        self.job_name = job_name
