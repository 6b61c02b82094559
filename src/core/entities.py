from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class ExtractionStrategy(str, Enum):
    """
    Content-acquisition methods, in fallback order.
    """
    PRIMARY = "primary_extraction"
    RSS_CONTENT = "rss_content_fallback"
    META_DESCRIPTION = "meta_description_fallback"
    TITLE_ONLY = "title_only_fallback"


class QualityRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class ImageUsage(str, Enum):
    HERO = "hero"
    THUMBNAIL = "thumbnail"
    GALLERY = "gallery"


class ItemOutcome(str, Enum):
    IMPORTED = "imported"
    SKIPPED = "skipped"
    ERROR = "error"


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RawImage:
    """
    Image reference discovered in markup, before scoring.
    """
    url: str
    alt: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    origin: str = "page"


@dataclass(frozen=True)
class ScoredImage:
    url: str
    alt: str
    width: Optional[int]
    height: Optional[int]
    score: int
    usage_class: Optional[ImageUsage] = None

    @property
    def aspect_ratio(self) -> Optional[float]:
        if self.width and self.height:
            return self.width / self.height
        return None


@dataclass(frozen=True)
class ExtractedContent:
    """
    Result of the extraction + fallback stage.
    success implies a non-empty body_text.
    """
    body_text: str
    raw_images: List[RawImage]
    strategy_used: Optional[ExtractionStrategy]
    success: bool
    title: str = ""
    author: Optional[str] = None
    published_at: Optional[str] = None
    final_url: Optional[str] = None

    @classmethod
    def failure(cls, title: str = "", final_url: Optional[str] = None) -> "ExtractedContent":
        return cls(
            body_text="",
            raw_images=[],
            strategy_used=None,
            success=False,
            title=title,
            final_url=final_url,
        )


@dataclass(frozen=True)
class StructuredArticle:
    """
    Rewritten article fields returned by the generative service.
    """
    title: str
    excerpt: str
    content: str
    slug: str
    seo_title: str
    seo_description: str
    tags: List[str] = field(default_factory=list)
    location: str = ""


@dataclass(frozen=True)
class CandidateArticle:
    """
    Fully assembled, not-yet-persisted article.
    source_url is the feed item's link and the only dedup key.
    """
    source_url: str
    category: str
    title: str
    slug: str
    excerpt: str
    content: str
    seo_title: str
    seo_description: str
    strategy_used: ExtractionStrategy
    quality: QualityRating
    images: List[ScoredImage] = field(default_factory=list)
    featured_image: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    location: str = ""
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    read_time: int = 1
    rewritten: bool = False

    def to_record(self) -> Dict[str, object]:
        return {
            "source_url": self.source_url,
            "title": self.title,
            "slug": self.slug,
            "excerpt": self.excerpt,
            "content": self.content,
            "seo_title": self.seo_title,
            "seo_description": self.seo_description,
            "strategy_used": self.strategy_used.value,
            "quality": self.quality.value,
            "featured_image": self.featured_image,
            "images": [
                {
                    "url": img.url,
                    "alt": img.alt,
                    "score": img.score,
                    "usage_class": img.usage_class.value if img.usage_class else None,
                }
                for img in self.images
            ],
            "tags": list(self.tags),
            "location": self.location,
            "author": self.author,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "read_time": self.read_time,
            "rewritten": self.rewritten,
        }


@dataclass(frozen=True)
class ImportRunResult:
    """
    Aggregate outcome of one orchestrator run for a single category.
    """
    category: str
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    article_ids: List[int] = field(default_factory=list)
    fetched: int = 0
    filtered_out: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    run_error: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def as_dict(self) -> Dict[str, object]:
        return {
            "category": self.category,
            "imported": self.imported,
            "skipped": self.skipped,
            "errors": self.errors,
            "article_ids": list(self.article_ids),
            "fetched": self.fetched,
            "filtered_out": self.filtered_out,
            "duration_seconds": self.duration_seconds,
            "run_error": self.run_error,
        }


@dataclass
class JobState:
    """
    Mutable per-job schedule state. Only the Scheduler writes to it.
    """
    is_running: bool = False
    last_status: Optional[JobStatus] = None
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    last_duration: Optional[float] = None
    last_results: List[ImportRunResult] = field(default_factory=list)
