"""
Import Orchestrator - runs the content-acquisition pipeline for one category.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import httpx

from core.entities import ImportRunResult, ItemOutcome
from core.errors import (
    DuplicateArticle,
    ExtractionExhausted,
    PersistenceFailure,
    RepositoryLookupFailure,
    UnknownCategory,
)
from core.quality import assess_quality
from extraction.fallback import FallbackChain
from extraction.page import PageFetcher
from extraction.primary import ContentExtractor
from ingestion.base import FeedItem
from ingestion.rss import RSSFeedFetcher
from ingestion.source_factory import CategoryFeeds, create_category_sources
from processing.assembler import assemble
from processing.deduplicator import DuplicateDetector
from processing.image_optimizer import ImageOptimizer
from processing.prefilter import BatchSeen, filter_items
from processing.rewriter import ArticleRewriter, SourceMetadata, rewritten_article
from services.config import Config, FilterConfig
from services.llm import OllamaClient
from services.repository import ARTICLES, AUTHORS, CATEGORIES, ArticleRepository
from services.retry import RetryPolicy
from workflows.base import ImportWorkflow

logger = logging.getLogger(__name__)


@dataclass
class _RunState:
    """
    Per-run counters. Quota check, confirm-dedupe and write happen under persist_lock.
    """
    category: str
    max_articles: int
    category_id: int
    author_id: int
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    article_ids: List[int] = field(default_factory=list)
    seen: BatchSeen = field(default_factory=BatchSeen)
    persist_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def quota_reached(self) -> bool:
        return self.imported >= self.max_articles


class ImportOrchestrator(ImportWorkflow):
    def __init__(
        self,
        *,
        sources: Dict[str, CategoryFeeds],
        repository: ArticleRepository,
        chain: FallbackChain,
        optimizer: Optional[ImageOptimizer] = None,
        detector: Optional[DuplicateDetector] = None,
        rewriter: Optional[ArticleRewriter] = None,
        filter_config: Optional[FilterConfig] = None,
        concurrency: int = 2,
        default_author: str = "News Harvester",
    ):
        self.sources = sources
        self.repository = repository
        self.chain = chain
        self.optimizer = optimizer or ImageOptimizer()
        self.detector = detector or DuplicateDetector(repository)
        self.rewriter = rewriter
        self.filter_config = filter_config or FilterConfig()
        self.concurrency = max(1, min(4, concurrency))
        self.default_author = default_author

    @property
    def categories(self) -> List[str]:
        return list(self.sources)

    async def _find_one(self, collection: str, name: str) -> int:
        matches = await self.repository.find_by_filter(collection, {"name": name})
        if not matches:
            raise RepositoryLookupFailure(collection, name)
        return matches[0]["id"]

    async def _resolve(self, category: str) -> Tuple[int, int]:
        category_id = await self._find_one(CATEGORIES, category)
        author_id = await self._find_one(AUTHORS, self.default_author)
        return category_id, author_id

    async def run(self, category: str, max_articles: int) -> ImportRunResult:
        if category not in self.sources:
            raise UnknownCategory(category, self.categories)

        started_at = datetime.now(timezone.utc)
        log_extra = {"category": category}

        try:
            category_id, author_id = await self._resolve(category)
        except RepositoryLookupFailure as e:
            logger.error(f"[{category}] Run aborted: {e.message}", extra=log_extra)
            return ImportRunResult(
                category=category,
                errors=1,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                run_error=e.message,
            )

        items = await self.sources[category].fetch_items()
        logger.info(f"[{category}] Fetched {len(items)} items from feeds", extra=log_extra)

        filtered, filtered_out = filter_items(
            items,
            min_title_length=self.filter_config.min_title_length,
            min_description_length=self.filter_config.min_description_length,
            blocked_extensions=self.filter_config.blocked_extensions,
        )
        logger.info(f"[{category}] After quality filter: {len(filtered)} items", extra=log_extra)

        run = _RunState(
            category=category,
            max_articles=max_articles,
            category_id=category_id,
            author_id=author_id,
        )
        semaphore = asyncio.Semaphore(self.concurrency)

        async def worker(item: FeedItem) -> None:
            async with semaphore:
                if run.quota_reached:
                    return
                try:
                    outcome = await self._process_item(item, run)
                except ExtractionExhausted as e:
                    logger.error(f"[{category}] {e.message}", extra=log_extra)
                    outcome = ItemOutcome.ERROR
                except PersistenceFailure as e:
                    logger.error(f"[{category}] Failed to store {item.link}: {e.message}", extra=log_extra)
                    outcome = ItemOutcome.ERROR
                except Exception as e:
                    logger.exception(f"[{category}] Unexpected error processing {item.link}: {e}", extra=log_extra)
                    outcome = ItemOutcome.ERROR

                if outcome == ItemOutcome.SKIPPED:
                    run.skipped += 1
                elif outcome == ItemOutcome.ERROR:
                    run.errors += 1

        await asyncio.gather(*(worker(item) for item in filtered))

        result = ImportRunResult(
            category=category,
            imported=run.imported,
            skipped=run.skipped,
            errors=run.errors,
            article_ids=list(run.article_ids),
            fetched=len(items),
            filtered_out=filtered_out,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        logger.info(
            f"[{category}] Import finished: imported={result.imported} skipped={result.skipped} "
            f"errors={result.errors} ({result.duration_seconds:.1f}s)",
            extra=log_extra,
        )
        return result

    async def _process_item(self, item: FeedItem, run: _RunState) -> Optional[ItemOutcome]:
        category = run.category

        if not run.seen.claim(item.link):
            logger.debug(f"[{category}] Skipping batch duplicate: {item.link}")
            return ItemOutcome.SKIPPED

        if await self.detector.exists(item.link):
            return ItemOutcome.SKIPPED

        content = await self.chain.extract(item)
        if not content.success:
            raise ExtractionExhausted(item.link)

        images = self.optimizer.optimize(content.raw_images)
        featured = self.optimizer.best_image(images)
        quality = assess_quality(len(content.body_text), len(images), content.strategy_used)

        rewritten = None
        if self.rewriter is not None:
            result = await self.rewriter.rewrite(
                content.body_text,
                SourceMetadata(source_url=item.link, original_title=item.title, category=category),
            )
            rewritten = rewritten_article(result)

        candidate = assemble(
            item=item,
            category=category,
            content=content,
            images=images,
            featured=featured,
            quality=quality,
            rewritten=rewritten,
        )

        async with run.persist_lock:
            if run.quota_reached:
                return None

            # extraction may take seconds; another run could have stored it meanwhile
            if await self.detector.exists(candidate.source_url):
                return ItemOutcome.SKIPPED

            record = candidate.to_record()
            record.update(
                category=category,
                category_id=run.category_id,
                author_id=run.author_id,
                final_url=content.final_url,
            )
            try:
                article_id = await self.repository.create(ARTICLES, record)
            except DuplicateArticle:
                logger.info(f"[{category}] Already stored by a concurrent run: {item.link}")
                return ItemOutcome.SKIPPED

            run.imported += 1
            run.article_ids.append(article_id)

        logger.info(
            f"[{category}] Imported '{candidate.title}' "
            f"(strategy={content.strategy_used.value}, quality={quality.value}, images={len(images)})"
        )
        return ItemOutcome.IMPORTED


def create_orchestrator(
    config: Config,
    repository: ArticleRepository,
    client: httpx.AsyncClient,
    llm: Optional[OllamaClient] = None,
) -> ImportOrchestrator:
    """
    Factory function to wire an orchestrator from configuration.

    Args:
        config: Loaded configuration
        repository: Shared repository
        client: Shared httpx client used for feeds and pages
        llm: Rewrite service client; created from config when rewriting is enabled

    Returns:
        Configured ImportOrchestrator
    """
    retry_policy = RetryPolicy(
        max_attempts=config.retry.max_attempts,
        base_delay=config.retry.base_delay,
        backoff_factor=config.retry.backoff_factor,
        max_delay=config.retry.max_delay,
    )

    fetcher = RSSFeedFetcher(client, timeout=config.http.feed_timeout, retry_policy=retry_policy)
    sources = create_category_sources(config.categories, fetcher)

    extractor = ContentExtractor(
        PageFetcher(client, timeout=config.http.page_timeout, retry_policy=retry_policy),
        min_length=config.extraction.primary_min_length,
        readability_min_length=config.extraction.readability_min_length,
        paragraph_min_length=config.extraction.paragraph_min_length,
    )
    chain = FallbackChain(
        extractor,
        rss_min_length=config.extraction.rss_min_length,
        meta_min_length=config.extraction.meta_min_length,
    )

    rewriter = None
    if config.rewriter.enabled:
        llm = llm or OllamaClient(
            base_url=config.rewriter.base_url,
            model=config.rewriter.model,
            temperature=config.rewriter.temperature,
            timeout=config.rewriter.timeout,
            retry_policy=retry_policy,
        )
        rewriter = ArticleRewriter(llm, max_input_chars=config.rewriter.max_input_chars)
        logger.info(f"AI rewriting enabled (model={config.rewriter.model})")

    return ImportOrchestrator(
        sources=sources,
        repository=repository,
        chain=chain,
        rewriter=rewriter,
        filter_config=config.filter,
        concurrency=config.importer.concurrency,
        default_author=config.importer.default_author,
    )
