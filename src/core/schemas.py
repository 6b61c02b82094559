"""
Pydantic schema for the rewrite service response
"""
import re
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.entities import StructuredArticle

SEO_TITLE_MAX = 60
SEO_DESCRIPTION_MAX = 160
MAX_TAGS = 10

ALLOWED_TAGS = {
    "p", "h1", "h2", "h3", "h4", "h5", "h6",
    "ul", "ol", "li", "strong", "em", "b", "i", "blockquote", "br",
}

_TAG_PATTERN = re.compile(r"</?\s*([a-zA-Z0-9]+)[^>]*?/?>")
_SCRIPT_PATTERN = re.compile(r"<(script|style)[^>]*>.*?</\1\s*>", re.DOTALL | re.IGNORECASE)


def sanitize_html(content: str) -> str:
    """
    Keep only semantic tags, dropping every attribute.
    """
    content = _SCRIPT_PATTERN.sub("", content)

    def _replace(match: re.Match) -> str:
        tag = match.group(1).lower()
        if tag not in ALLOWED_TAGS:
            return ""
        if tag == "br":
            return "<br>"
        closing = match.group(0).startswith("</")
        return f"</{tag}>" if closing else f"<{tag}>"

    return _TAG_PATTERN.sub(_replace, content).strip()


class RewrittenArticle(BaseModel):
    """
    Strict shape demanded from the rewrite service.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = Field(..., min_length=1)
    excerpt: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    slug: str = Field(...)
    seo_title: str = Field(..., alias="seoTitle")
    seo_description: str = Field(..., alias="seoDescription")
    tags: List[str] = Field(...)
    # may be empty when the story has no clear location
    location: str = Field(...)

    @field_validator("title", "excerpt", "slug", "location", mode="after")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("seo_title", mode="after")
    @classmethod
    def _truncate_seo_title(cls, value: str) -> str:
        return value.strip()[:SEO_TITLE_MAX]

    @field_validator("seo_description", mode="after")
    @classmethod
    def _truncate_seo_description(cls, value: str) -> str:
        return value.strip()[:SEO_DESCRIPTION_MAX]

    @field_validator("tags", mode="after")
    @classmethod
    def _normalize_tags(cls, value: List[str]) -> List[str]:
        tags: List[str] = []
        for tag in value:
            tag = tag.strip().lower()
            if tag and tag not in tags:
                tags.append(tag)
        return tags[:MAX_TAGS]

    @field_validator("content", mode="after")
    @classmethod
    def _sanitize_content(cls, value: str) -> str:
        cleaned = sanitize_html(value)
        if not cleaned:
            raise ValueError("content is empty after sanitizing")
        return cleaned

    def to_structured(self) -> StructuredArticle:
        return StructuredArticle(
            title=self.title,
            excerpt=self.excerpt,
            content=self.content,
            slug=self.slug,
            seo_title=self.seo_title,
            seo_description=self.seo_description,
            tags=list(self.tags),
            location=self.location,
        )
