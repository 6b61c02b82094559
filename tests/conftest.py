"""
Shared fixtures: in-memory repository, feed items, mock HTTP pages.
"""
from typing import Any, Callable, Dict, List, Optional, Set

import httpx
import pytest

from core.errors import DuplicateArticle, PersistenceFailure
from extraction.fallback import FallbackChain
from extraction.page import PageFetcher
from extraction.primary import ContentExtractor
from ingestion.base import FeedItem
from services.http import create_client
from services.repository import ARTICLES, AUTHORS, CATEGORIES, ArticleRepository


class FakeRepository(ArticleRepository):
    """
    In-memory repository with a unique source_url constraint.
    URLs in fail_on raise PersistenceFailure on create.
    """

    def __init__(self, categories: Optional[List[str]] = None, authors: Optional[List[str]] = None):
        self.collections: Dict[str, List[Dict[str, Any]]] = {ARTICLES: [], CATEGORIES: [], AUTHORS: []}
        self._next_id = 1
        self.fail_on: Set[str] = set()
        self.create_calls = 0
        for name in categories or []:
            self._insert(CATEGORIES, {"name": name})
        for name in authors or []:
            self._insert(AUTHORS, {"name": name})

    def _insert(self, collection: str, entity: Dict[str, Any]) -> int:
        record = dict(entity, id=self._next_id)
        self._next_id += 1
        self.collections[collection].append(record)
        return record["id"]

    async def create(self, collection: str, entity: Dict[str, Any]) -> int:
        self.create_calls += 1
        if collection == ARTICLES:
            source_url = entity["source_url"]
            if source_url in self.fail_on:
                raise PersistenceFailure(f"write rejected for {source_url}")
            if any(a["source_url"] == source_url for a in self.collections[ARTICLES]):
                raise DuplicateArticle(source_url)
        return self._insert(collection, entity)

    async def find_by_filter(self, collection: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [
            dict(record)
            for record in self.collections[collection]
            if all(record.get(k) == v for k, v in filters.items())
        ]

    async def delete(self, collection: str, entity_id: int) -> bool:
        before = len(self.collections[collection])
        self.collections[collection] = [r for r in self.collections[collection] if r["id"] != entity_id]
        return len(self.collections[collection]) < before

    @property
    def articles(self) -> List[Dict[str, Any]]:
        return self.collections[ARTICLES]


class StaticFeeds:
    """
    Stand-in for CategoryFeeds returning a fixed list of items.
    """

    def __init__(self, name: str, items: List[FeedItem]):
        self.name = name
        self.items = list(items)
        self.calls = 0

    async def fetch_items(self) -> List[FeedItem]:
        self.calls += 1
        return list(self.items)


PARAGRAPH = (
    "Researchers at the national laboratory announced on Tuesday that the new detector had recorded "
    "the faintest signal ever measured, a result that could reshape how scientists search for dark matter."
)


def article_html(
    title: str = "Detector records faintest signal ever measured",
    paragraphs: int = 4,
    images: str = "",
    head: str = "",
) -> str:
    body = "".join(f"<p>{PARAGRAPH} Paragraph {i}.</p>" for i in range(paragraphs))
    return f"""<html>
<head>
  <title>{title}</title>
  <meta name="description" content="A short meta description that is comfortably longer than thirty characters.">
  <meta name="author" content="Jane Reporter">
  <meta property="article:published_time" content="2024-03-01T10:00:00Z">
  {head}
</head>
<body>
  <nav><a href="/">Home</a><a href="/world">World</a></nav>
  <header><p>Site header text that is not part of the article at all, and should be dropped.</p></header>
  <article>
    <h1>{title}</h1>
    {images}
    {body}
  </article>
  <div class="social-share"><p>Share this article on every social network you can think of right now.</p></div>
  <footer><p>Copyright notice and other footer text that is not part of the article.</p></footer>
</body>
</html>"""


def meta_only_html(description: str = "Officials confirmed the bridge will reopen to traffic next week.") -> str:
    return f"""<html><head>
<meta property="og:description" content="{description}">
</head><body><div id="app"></div></body></html>"""


def make_item(
    title: str = "A Properly Long Article Title About Science",
    link: str = "https://news.example.com/science/1",
    snippet: str = "",
    raw_content: str = "",
    enclosure_url: Optional[str] = None,
    categories: tuple = (),
) -> FeedItem:
    return FeedItem(
        title=title,
        link=link,
        raw_content=raw_content,
        snippet=snippet,
        enclosure_url=enclosure_url,
        guid=link,
        source_label="Example News",
        categories=categories,
    )


class Router:
    """
    URL -> handler mapping for httpx.MockTransport. Unknown URLs return 404.
    """

    def __init__(self):
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def html(self, url: str, body: str, status: int = 200) -> None:
        self.routes[url] = lambda request: httpx.Response(
            status, text=body, headers={"content-type": "text/html; charset=utf-8"}
        )

    def xml(self, url: str, body: str, status: int = 200) -> None:
        self.routes[url] = lambda request: httpx.Response(
            status, content=body.encode("utf-8"), headers={"content-type": "application/rss+xml"}
        )

    def status(self, url: str, status: int) -> None:
        self.routes[url] = lambda request: httpx.Response(status, text="error")

    def timeout(self, url: str) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)
        self.routes[url] = handler

    def redirect(self, url: str, location: str) -> None:
        self.routes[url] = lambda request: httpx.Response(301, headers={"location": location})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(str(request.url))
        if handler is None:
            return httpx.Response(404, text="not found")
        return handler(request)

    def hits(self, url: str) -> int:
        return sum(1 for r in self.requests if str(r.url) == url)


def rss_xml(items: List[Dict[str, str]], title: str = "Example News") -> str:
    entries = []
    for item in items:
        parts = [f"<title>{item['title']}</title>", f"<link>{item['link']}</link>"]
        if "description" in item:
            parts.append(f"<description><![CDATA[{item['description']}]]></description>")
        if "enclosure" in item:
            parts.append(f'<enclosure url="{item["enclosure"]}" type="image/jpeg" length="0"/>')
        parts.append("<pubDate>Fri, 01 Mar 2024 10:00:00 GMT</pubDate>")
        entries.append("<item>" + "".join(parts) + "</item>")
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>{title}</title><link>https://news.example.com</link>
<description>Test feed</description>{''.join(entries)}</channel></rss>"""


@pytest.fixture
def router() -> Router:
    return Router()


@pytest.fixture
def client(router: Router) -> httpx.AsyncClient:
    return create_client(timeout=5.0, transport=httpx.MockTransport(router))


@pytest.fixture
def chain(client: httpx.AsyncClient) -> FallbackChain:
    return FallbackChain(ContentExtractor(PageFetcher(client, timeout=5.0)))


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository(categories=["Science", "World"], authors=["News Harvester"])
