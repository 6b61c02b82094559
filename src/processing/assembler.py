"""
Builds the CandidateArticle from extracted (and optionally rewritten) content
"""
import html
import math
import re
from datetime import datetime, timezone
from typing import List, Optional

from core.entities import (
    CandidateArticle,
    ExtractedContent,
    ExtractionStrategy,
    QualityRating,
    ScoredImage,
    StructuredArticle,
)
from core.schemas import SEO_DESCRIPTION_MAX, SEO_TITLE_MAX
from ingestion.base import FeedItem

EXCERPT_LENGTH = 300
WORDS_PER_MINUTE = 200
SLUG_MAX = 50


def slugify(title: str, now: Optional[datetime] = None) -> str:
    """
    Title-based slug with a date and time suffix, e.g. "storm-hits-coast-20240301-512345".
    """
    now = now or datetime.now(timezone.utc)
    base = re.sub(r"[^a-z0-9\s-]", "", title.lower())
    base = re.sub(r"[\s_]+", "-", base)
    base = re.sub(r"-+", "-", base).strip("-")[:SLUG_MAX].strip("-")
    if len(base) < 3:
        base = "article"
    stamp = str(int(now.timestamp() * 1000))[-6:]
    return f"{base}-{now.strftime('%Y%m%d')}-{stamp}"


def make_excerpt(text: str, length: int = EXCERPT_LENGTH) -> str:
    plain = re.sub(r"<[^>]*>", "", text)
    plain = re.sub(r"\s+", " ", plain).strip()
    if len(plain) <= length:
        return plain

    truncated = plain[:length]
    last_sentence = truncated.rfind(".")
    if last_sentence > length * 0.7:
        return truncated[:last_sentence + 1]

    last_space = truncated.rfind(" ")
    if last_space > 0:
        truncated = truncated[:last_space]
    return truncated + "..."


def read_time(text: str) -> int:
    words = len(re.sub(r"<[^>]*>", " ", text).split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def parse_published(value: Optional[str], fallback: Optional[datetime]) -> Optional[datetime]:
    if value:
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return fallback


def text_to_html(text: str, source_url: str, strategy: ExtractionStrategy) -> str:
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n|\n", text) if p.strip()]
    body = "".join(f"<p>{html.escape(p)}</p>" for p in paragraphs)
    if strategy != ExtractionStrategy.PRIMARY:
        body += f'<p><a href="{html.escape(source_url, quote=True)}">Read the full article</a></p>'
    return body


def assemble(
    *,
    item: FeedItem,
    category: str,
    content: ExtractedContent,
    images: List[ScoredImage],
    featured: Optional[ScoredImage],
    quality: QualityRating,
    rewritten: Optional[StructuredArticle] = None,
    now: Optional[datetime] = None,
) -> CandidateArticle:
    """
    source_url is always the feed item's link, whatever the page redirected to.
    """
    if rewritten is not None:
        title = rewritten.title or item.title
        excerpt = rewritten.excerpt or make_excerpt(content.body_text)
        body_html = rewritten.content
        tags = list(rewritten.tags)
        location = rewritten.location
        seo_title = rewritten.seo_title
        seo_description = rewritten.seo_description
        slug_source = rewritten.slug or title
    else:
        title = item.title
        excerpt = make_excerpt(content.body_text)
        body_html = text_to_html(content.body_text, item.link, content.strategy_used)
        tags = [c.strip().lower() for c in item.categories if c.strip()][:10]
        location = ""
        seo_title = ""
        seo_description = ""
        slug_source = title

    return CandidateArticle(
        source_url=item.link,
        category=category,
        title=title,
        slug=slugify(slug_source, now),
        excerpt=excerpt,
        content=body_html,
        seo_title=(seo_title or title)[:SEO_TITLE_MAX],
        seo_description=(seo_description or excerpt)[:SEO_DESCRIPTION_MAX],
        strategy_used=content.strategy_used,
        quality=quality,
        images=list(images),
        featured_image=featured.url if featured else None,
        tags=tags,
        location=location,
        author=content.author,
        published_at=parse_published(content.published_at, item.published_at),
        read_time=read_time(content.body_text),
        rewritten=rewritten is not None,
    )
