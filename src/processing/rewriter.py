import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from pydantic import ValidationError

from core.entities import StructuredArticle
from core.errors import RewriteFailed
from core.schemas import SEO_DESCRIPTION_MAX, SEO_TITLE_MAX, RewrittenArticle
from services.llm import OllamaClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_INPUT_CHARS = 6000


@dataclass(frozen=True)
class SourceMetadata:
    source_url: str
    original_title: str
    category: str


@dataclass(frozen=True)
class RewriteSuccess:
    article: StructuredArticle


@dataclass(frozen=True)
class RewriteFailure:
    reason: str


RewriteResult = Union[RewriteSuccess, RewriteFailure]


def _extract_json(content: str) -> str:
    """
    Extract the JSON object from an LLM response, stripping markdown code fences if present.
    """
    content = content.strip()

    pattern = r'^```(?:json)?\s*\n?(.*?)\n?```$'
    match = re.match(pattern, content, re.DOTALL)
    if match:
        return match.group(1).strip()

    object_match = re.search(r'\{.*\}', content, re.DOTALL)
    if object_match:
        return object_match.group(0)

    return content


def build_prompt(text: str, metadata: SourceMetadata, max_chars: int = DEFAULT_MAX_INPUT_CHARS) -> str:
    excerpt = text[:max_chars]
    truncated = " ...[truncated]" if len(text) > max_chars else ""

    return f"""You are a news editor. Rewrite the source article below into an original, factual news article.

Category: {metadata.category}
Original title: {metadata.original_title}
Source URL: {metadata.source_url}

SOURCE TEXT:
{excerpt}{truncated}

Rules:
- Keep every fact from the source; do not invent quotes, names or numbers
- content is HTML using only <p>, <h2>, <h3>, <ul>, <ol>, <li>, <strong>, <em>, <blockquote>
- seoTitle at most {SEO_TITLE_MAX} characters, seoDescription at most {SEO_DESCRIPTION_MAX} characters
- tags: 5-10 short lowercase topic tags
- location: main geographic location of the story, or "" if none

Return ONLY a JSON object with exactly these fields:
{{"title": "...", "excerpt": "...", "content": "<p>...</p>", "slug": "...", "seoTitle": "...", "seoDescription": "...", "tags": ["..."], "location": "..."}}

JSON object:"""


class ArticleRewriter:
    """
    Turns extracted text into a StructuredArticle through the generative service.
    Never raises: failures come back as RewriteFailure.
    """

    def __init__(self, llm: OllamaClient, max_input_chars: int = DEFAULT_MAX_INPUT_CHARS):
        self.llm = llm
        self.max_input_chars = max_input_chars

    async def _request(self, text: str, metadata: SourceMetadata) -> StructuredArticle:
        prompt = build_prompt(text, metadata, self.max_input_chars)

        try:
            response = await self.llm.evaluate(prompt)
        except Exception as e:
            raise RewriteFailed(f"Rewrite service call failed: {e.__class__.__name__}: {e}") from e

        raw_content = response.get("content")
        if not isinstance(raw_content, str) or not raw_content.strip():
            raise RewriteFailed("Rewrite service returned an empty response")

        logger.debug(f"Rewrite response received (latency: {response.get('latency_ms')}ms)")

        clean_json = _extract_json(raw_content)
        try:
            parsed = RewrittenArticle.model_validate_json(clean_json)
        except ValidationError as e:
            logger.debug(f"Raw rewrite response: {raw_content[:500]}")
            raise RewriteFailed(f"Invalid rewrite response: {e.error_count()} validation errors") from e

        return parsed.to_structured()

    async def rewrite(self, text: str, metadata: SourceMetadata) -> RewriteResult:
        try:
            article = await self._request(text, metadata)
        except RewriteFailed as e:
            logger.warning(f"[{metadata.category}] Rewrite failed for {metadata.source_url}: {e.message}")
            return RewriteFailure(reason=e.message)
        return RewriteSuccess(article=article)


def rewritten_article(result: RewriteResult) -> Optional[StructuredArticle]:
    return result.article if isinstance(result, RewriteSuccess) else None
