"""
Loads and handles config from config.yml
Deployment overrides (OLLAMA_BASE_URL, DATABASE_PATH, ...) are loaded from .env
"""
import logging
import os
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from core.categories import ALL_CATEGORIES

logger = logging.getLogger(__name__)


class HttpConfig(BaseModel):
    """Timeouts for every outbound request."""
    feed_timeout: float = 10.0
    page_timeout: float = 15.0
    connect_timeout: float = 5.0
    user_agent: Optional[str] = None


class RetryConfig(BaseModel):
    max_attempts: int = Field(3, ge=1)
    base_delay: float = Field(1.0, ge=0.0)
    backoff_factor: float = Field(2.0, ge=1.0)
    max_delay: float = 30.0


class FilterConfig(BaseModel):
    """Thresholds of the feed-item quality filter."""
    min_title_length: int = 20
    min_description_length: int = 50
    blocked_extensions: List[str] = [".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".zip", ".mp3", ".mp4"]


class ExtractionConfig(BaseModel):
    readability_min_length: int = 200
    paragraph_min_length: int = 50
    primary_min_length: int = 100
    rss_min_length: int = 50
    meta_min_length: int = 30


class RewriterConfig(BaseModel):
    """Ollama-backed rewrite service."""
    enabled: bool = False
    base_url: str = "http://localhost:11434"
    model: str = "llama3.1:8b"
    max_input_chars: int = 6000
    timeout: float = 120.0
    temperature: float = 0.3


class ImporterConfig(BaseModel):
    concurrency: int = Field(2, ge=1, le=4)
    default_author: str = "News Harvester"


class CategoryConfig(BaseModel):
    """A category and the feeds harvested for it."""
    name: str
    feeds: List[str] = []


class JobConfig(BaseModel):
    """
    A named scheduler job: a group of categories bound to an interval.
    """
    name: str
    categories: List[str] = []
    interval_minutes: int = Field(120, ge=1)
    max_articles_per_category: int = Field(8, ge=1)
    enabled: bool = True


class Config(BaseModel):
    DATABASE_PATH: str = "data/news.db"
    LOG_LEVEL: str = "INFO"

    http: HttpConfig = HttpConfig()
    retry: RetryConfig = RetryConfig()
    filter: FilterConfig = FilterConfig()
    extraction: ExtractionConfig = ExtractionConfig()
    rewriter: RewriterConfig = RewriterConfig()
    importer: ImporterConfig = ImporterConfig()

    categories: List[CategoryConfig] = []
    jobs: List[JobConfig] = []

    def category_feeds(self) -> Dict[str, List[str]]:
        return {c.name: list(c.feeds) for c in self.categories}

    def get_job(self, name: str) -> Optional[JobConfig]:
        for job in self.jobs:
            if job.name == name:
                return job
        return None


def _bool(value: str | bool) -> bool:
    """Convert string or bool to boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def _get_config_path() -> Optional[str]:
    """Get the path to config.yml, handling different working directories."""
    explicit = os.getenv("NEWS_HARVESTER_CONFIG")
    if explicit:
        if not os.path.exists(explicit):
            raise FileNotFoundError(f"Cannot find config file {explicit}")
        return explicit

    if os.path.exists('resources/config.yml'):
        return 'resources/config.yml'

    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    config_path = os.path.join(project_root, 'resources', 'config.yml')
    if os.path.exists(config_path):
        return config_path

    return None


def default_categories() -> List[CategoryConfig]:
    return [CategoryConfig(name=c.name, feeds=list(c.feeds)) for c in ALL_CATEGORIES.values()]


def default_jobs(category_names: List[str]) -> List[JobConfig]:
    return [
        JobConfig(
            name="all_categories_every_2h",
            categories=category_names,
            interval_minutes=120,
            max_articles_per_category=8,
        ),
        JobConfig(
            name="all_categories_backup",
            categories=category_names,
            interval_minutes=360,
            max_articles_per_category=5,
        ),
    ]


def _parse_categories(data: Dict[str, Any]) -> List[CategoryConfig]:
    """
    Accepts either {name: [feeds]} or {name: {feeds: [...]}}.
    Categories listed without feeds inherit the built-in defaults.
    """
    categories = []
    for name, value in data.items():
        if isinstance(value, dict):
            feeds = value.get("feeds") or []
        else:
            feeds = value or []
        if not feeds and name in ALL_CATEGORIES:
            feeds = list(ALL_CATEGORIES[name].feeds)
        categories.append(CategoryConfig(name=name, feeds=feeds))
    return categories


def _parse_job_config(name: str, data: Dict[str, Any], all_categories: List[str]) -> JobConfig:
    categories = data.get("categories", "all")
    if categories == "all":
        categories = list(all_categories)

    return JobConfig(
        name=name,
        categories=categories,
        interval_minutes=int(data.get("interval_minutes", 120)),
        max_articles_per_category=int(data.get("max_articles_per_category", 8)),
        enabled=_bool(data.get("enabled", True)),
    )


def build_config(raw: Dict[str, Any]) -> Config:
    """Build a Config from parsed YAML data, filling defaults where sections are missing."""
    if raw.get("categories"):
        categories = _parse_categories(raw["categories"])
    else:
        categories = default_categories()
    category_names = [c.name for c in categories]

    jobs = []
    for job_name, job_data in (raw.get("jobs") or {}).items():
        try:
            jobs.append(_parse_job_config(job_name, job_data or {}, category_names))
        except Exception as e:
            logger.error(f"Failed to parse job '{job_name}': {e}")
    if not raw.get("jobs"):
        jobs = default_jobs(category_names)

    return Config(
        DATABASE_PATH=raw.get("DATABASE_PATH", "data/news.db"),
        LOG_LEVEL=str(raw.get("LOG_LEVEL", "INFO")).upper(),
        http=HttpConfig(**(raw.get("http") or {})),
        retry=RetryConfig(**(raw.get("retry") or {})),
        filter=FilterConfig(**(raw.get("filter") or {})),
        extraction=ExtractionConfig(**(raw.get("extraction") or {})),
        rewriter=RewriterConfig(**(raw.get("rewriter") or {})),
        importer=ImporterConfig(**(raw.get("importer") or {})),
        categories=categories,
        jobs=jobs,
    )


def _apply_env_overrides(config: Config) -> Config:
    if os.getenv("DATABASE_PATH"):
        config.DATABASE_PATH = os.environ["DATABASE_PATH"]
    if os.getenv("LOG_LEVEL"):
        config.LOG_LEVEL = os.environ["LOG_LEVEL"].upper()
    if os.getenv("OLLAMA_BASE_URL"):
        config.rewriter.base_url = os.environ["OLLAMA_BASE_URL"]
    if os.getenv("OLLAMA_MODEL"):
        config.rewriter.model = os.environ["OLLAMA_MODEL"]
    if os.getenv("REWRITE_ENABLED") is not None:
        config.rewriter.enabled = _bool(os.environ["REWRITE_ENABLED"])
    return config


def load_config() -> Config:
    """Load configuration from config.yml, then apply .env / environment overrides."""
    load_dotenv()

    config_path = _get_config_path()

    raw: Dict[str, Any] = {}
    if config_path:
        with open(config_path, 'r') as file:
            raw = yaml.safe_load(file) or {}
    else:
        logger.warning("No config.yml found, using built-in defaults")

    return _apply_env_overrides(build_config(raw))
