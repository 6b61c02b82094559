"""
Fallback chain: primary extraction, then progressively degraded strategies.
"""
import logging
from typing import List, Optional

from core.entities import ExtractedContent, ExtractionStrategy, RawImage
from extraction.markup import images_from_html, resolve_image_url, strip_markup
from extraction.page import FetchedPage
from extraction.primary import ContentExtractor, ParsedPage
from ingestion.base import FeedItem

logger = logging.getLogger(__name__)


class FallbackChain:
    """
    Runs each strategy in order until one succeeds:
    primary_extraction -> rss_content_fallback -> meta_description_fallback -> title_only_fallback.
    The result has success=False only when even the title is empty.
    """

    def __init__(
        self,
        extractor: ContentExtractor,
        rss_min_length: int = 50,
        meta_min_length: int = 30,
    ):
        self.extractor = extractor
        self.rss_min_length = rss_min_length
        self.meta_min_length = meta_min_length

    async def extract(self, item: FeedItem) -> ExtractedContent:
        page, parsed = await self.extractor.fetch_and_parse(item.link)

        primary = self.extractor.to_content(page, parsed)
        if primary.success:
            return primary

        logger.debug(f"Primary extraction failed for {item.link} ({page.error or 'insufficient content'})")

        for strategy in (self._rss_content, self._meta_description, self._title_only):
            result = strategy(item, page, parsed)
            if result is not None and result.success:
                logger.info(f"Used {result.strategy_used.value} for {item.link}")
                return result

        logger.warning(f"All extraction strategies failed for {item.link}")
        return ExtractedContent.failure(title=item.title, final_url=page.final_url)

    def _common(self, item: FeedItem, page: FetchedPage, parsed: Optional[ParsedPage]) -> dict:
        return {
            "title": item.title,
            "author": parsed.author if parsed else None,
            "published_at": parsed.published_at if parsed else None,
            "final_url": page.final_url,
        }

    def _rss_content(self, item: FeedItem, page: FetchedPage, parsed: Optional[ParsedPage]) -> Optional[ExtractedContent]:
        text = max(strip_markup(item.raw_content), item.snippet, key=len)
        if len(text) <= self.rss_min_length:
            return None

        images: List[RawImage] = images_from_html(item.raw_content, item.link, origin="feed")
        enclosure = resolve_image_url(item.enclosure_url, item.link)
        if enclosure:
            images.append(RawImage(url=enclosure, origin="enclosure"))

        return ExtractedContent(
            body_text=text,
            raw_images=images,
            strategy_used=ExtractionStrategy.RSS_CONTENT,
            success=True,
            **self._common(item, page, parsed),
        )

    def _meta_description(self, item: FeedItem, page: FetchedPage, parsed: Optional[ParsedPage]) -> Optional[ExtractedContent]:
        if parsed is None or len(parsed.meta_description) <= self.meta_min_length:
            return None

        return ExtractedContent(
            body_text=parsed.meta_description,
            raw_images=[],
            strategy_used=ExtractionStrategy.META_DESCRIPTION,
            success=True,
            **self._common(item, page, parsed),
        )

    def _title_only(self, item: FeedItem, page: FetchedPage, parsed: Optional[ParsedPage]) -> Optional[ExtractedContent]:
        title = item.title.strip()
        if not title:
            return None

        return ExtractedContent(
            body_text=title,
            raw_images=[],
            strategy_used=ExtractionStrategy.TITLE_ONLY,
            success=True,
            **self._common(item, page, parsed),
        )
