import argparse
import asyncio
import json
import logging
import signal
import sys
import time
from typing import List, Optional

from core.errors import HarvesterError
from services.config import Config, load_config
from services.http import create_client
from services.llm import OllamaClient
from services.logging import setup_logging
from services.repository import ARTICLES, SqliteArticleRepository
from services.scheduler import Scheduler
from workflows.importer import create_orchestrator

logger = logging.getLogger(__name__)


async def _prepare_repository(config: Config) -> SqliteArticleRepository:
    repository = SqliteArticleRepository(config.DATABASE_PATH)
    await repository.init_tables()
    await repository.seed_categories(
        [c.name for c in config.categories],
        author=config.importer.default_author,
    )
    return repository


async def init_db(config: Config) -> int:
    await _prepare_repository(config)
    logger.info(f"Database ready at {config.DATABASE_PATH}")
    return 0


async def run_import(config: Config, categories: List[str], max_articles: int) -> int:
    start_time = time.perf_counter()
    repository = await _prepare_repository(config)

    async with create_client(
        timeout=config.http.page_timeout,
        connect_timeout=config.http.connect_timeout,
    ) as client:
        orchestrator = create_orchestrator(config, repository, client)
        scheduler = Scheduler(orchestrator, config.jobs)

        categories = categories or orchestrator.categories
        try:
            results = await scheduler.trigger_import(categories, max_articles)
        except HarvesterError as e:
            logger.error(e.message)
            print(json.dumps({"error": e.message, **e.details}))
            return 2

    print(json.dumps([r.as_dict() for r in results], indent=2))
    logger.info(f"Total time: {time.perf_counter() - start_time:.1f}s")
    return 0


async def serve(config: Config, run_now: bool = False) -> int:
    repository = await _prepare_repository(config)

    async with create_client(
        timeout=config.http.page_timeout,
        connect_timeout=config.http.connect_timeout,
    ) as client:
        orchestrator = create_orchestrator(config, repository, client)
        scheduler = Scheduler(orchestrator, config.jobs)

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                # add_signal_handler is unavailable on Windows event loops
                pass

        started = await scheduler.start_all()
        logger.info(f"Scheduler running with jobs: {', '.join(started) or 'none'}")

        if run_now:
            for name in started:
                scheduler.spawn_tick(name)

        try:
            await stop.wait()
        finally:
            logger.info("Shutting down, waiting for in-flight runs")
            await scheduler.shutdown(wait=True)

    return 0


async def show_status(config: Config) -> int:
    repository = await _prepare_repository(config)
    status = {
        "database": config.DATABASE_PATH,
        "articles": await repository.count(ARTICLES),
        "rewriter_enabled": config.rewriter.enabled,
        "rewriter_reachable": None,
        "categories": {c.name: len(c.feeds) for c in config.categories},
        "jobs": [job.model_dump() for job in config.jobs],
    }
    if config.rewriter.enabled:
        llm = OllamaClient(base_url=config.rewriter.base_url, model=config.rewriter.model)
        status["rewriter_reachable"] = await llm.health_check()
    print(json.dumps(status, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="news-harvester", description="Harvest news articles from RSS feeds")
    sub = parser.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Run an import now")
    imp.add_argument("-c", "--category", action="append", default=[], help="Category to import (repeatable, default: all)")
    imp.add_argument("-n", "--max-articles", type=int, default=8, help="Maximum new articles per category")

    srv = sub.add_parser("serve", help="Start all scheduled jobs and run until interrupted")
    srv.add_argument("--run-now", action="store_true", help="Tick every job once at startup")

    sub.add_parser("status", help="Show stored article count, categories and jobs")
    sub.add_parser("init-db", help="Create tables and seed categories")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config()
    setup_logging(config.LOG_LEVEL)

    if args.command == "import":
        return asyncio.run(run_import(config, args.category, args.max_articles))
    if args.command == "serve":
        return asyncio.run(serve(config, run_now=args.run_now))
    if args.command == "status":
        return asyncio.run(show_status(config))
    if args.command == "init-db":
        return asyncio.run(init_db(config))
    return 1


if __name__ == "__main__":
    sys.exit(main())
