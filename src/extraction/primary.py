"""
Primary content extraction: main-content isolation and image discovery
"""
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup
from lxml import html as lxml_html
from readability import Document

from core.entities import ExtractedContent, ExtractionStrategy, RawImage
from extraction.markup import collapse_whitespace, images_from_soup, resolve_image_url
from extraction.page import FetchedPage, PageFetcher

logger = logging.getLogger(__name__)

NON_CONTENT_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside", "form", "iframe", "svg"]
PROTECTED_TAGS = {"html", "body", "main", "article"}

NOISE_PATTERN = re.compile(
    r"(^|[-_\s])(ad|ads|advert|advertisement|sponsored|share|sharing|social|comment|comments|"
    r"related|newsletter|promo|cookie|subscribe|outbrain|taboola)([-_\s]|$)",
    re.IGNORECASE,
)

AUTHOR_META = [
    ("name", "author"),
    ("property", "article:author"),
    ("name", "byl"),
    ("name", "parsely-author"),
]

DATE_META = [
    ("property", "article:published_time"),
    ("name", "pubdate"),
    ("name", "publishdate"),
    ("itemprop", "datePublished"),
    ("name", "date"),
]

DESCRIPTION_META = [
    ("name", "description"),
    ("property", "og:description"),
    ("name", "twitter:description"),
]


@dataclass
class ParsedPage:
    """
    Everything the extractors need from one fetched page.
    """
    body_text: str = ""
    images: List[RawImage] = field(default_factory=list)
    title: str = ""
    meta_description: str = ""
    author: Optional[str] = None
    published_at: Optional[str] = None


def _meta_content(soup: BeautifulSoup, candidates: List[Tuple[str, str]]) -> Optional[str]:
    for attr, value in candidates:
        tag = soup.find("meta", attrs={attr: value})
        if tag and tag.get("content"):
            content = collapse_whitespace(tag["content"])
            if content:
                return content
    return None


def _strip_noise(soup: BeautifulSoup) -> None:
    for tag in soup(NON_CONTENT_TAGS):
        tag.decompose()

    noisy = soup.find_all(class_=NOISE_PATTERN) + soup.find_all(id=NOISE_PATTERN)
    for element in noisy:
        if element.decomposed or element.name in PROTECTED_TAGS:
            continue
        element.decompose()


def _readability_text(html: str) -> str:
    try:
        summary_html = Document(html).summary(html_partial=True)
        tree = lxml_html.fromstring(summary_html)
    except Exception as e:
        logger.debug(f"readability failed: {e}")
        return ""

    text = tree.text_content()
    lines = [collapse_whitespace(line) for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def _paragraph_text(soup: BeautifulSoup, min_length: int) -> str:
    paragraphs = []
    for p in soup.find_all("p"):
        text = collapse_whitespace(p.get_text(" "))
        if len(text) > min_length:
            paragraphs.append(text)
    return "\n\n".join(paragraphs)


def _author(soup: BeautifulSoup) -> Optional[str]:
    author = _meta_content(soup, AUTHOR_META)
    if author and not author.startswith(("http://", "https://")):
        return author

    byline = soup.find(attrs={"rel": "author"}) or soup.find(class_=re.compile(r"(^|[-_])(author|byline)([-_]|$)", re.I))
    if byline:
        text = collapse_whitespace(byline.get_text(" "))
        if text and len(text) < 100:
            return re.sub(r"^by\s+", "", text, flags=re.IGNORECASE)
    return None


def _published_at(soup: BeautifulSoup) -> Optional[str]:
    published = _meta_content(soup, DATE_META)
    if published:
        return published
    time_tag = soup.find("time", attrs={"datetime": True})
    if time_tag:
        return time_tag["datetime"].strip() or None
    return None


def parse_page(
    html: str,
    base_url: str,
    readability_min_length: int = 200,
    paragraph_min_length: int = 50,
) -> ParsedPage:
    soup = BeautifulSoup(html, "lxml")

    parsed = ParsedPage(
        meta_description=_meta_content(soup, DESCRIPTION_META) or "",
        author=_author(soup),
        published_at=_published_at(soup),
    )

    og_title = _meta_content(soup, [("property", "og:title")])
    h1 = soup.find("h1")
    if og_title:
        parsed.title = og_title
    elif h1:
        parsed.title = collapse_whitespace(h1.get_text(" "))
    elif soup.title and soup.title.string:
        parsed.title = collapse_whitespace(soup.title.string)

    og_image = resolve_image_url(_meta_content(soup, [("property", "og:image"), ("name", "twitter:image")]), base_url)

    _strip_noise(soup)

    images = images_from_soup(soup, base_url)
    if og_image:
        images.insert(0, RawImage(url=og_image, alt=parsed.title, origin="og"))
    parsed.images = images

    text = _readability_text(str(soup))
    if len(text) < readability_min_length:
        paragraphs = _paragraph_text(soup, paragraph_min_length)
        if paragraphs:
            text = paragraphs
    parsed.body_text = text

    return parsed


class ContentExtractor:
    """
    Fetch a source page and extract readable article text and candidate images.
    Failures are reported as success=False, never raised.
    """

    def __init__(
        self,
        page_fetcher: PageFetcher,
        min_length: int = 100,
        readability_min_length: int = 200,
        paragraph_min_length: int = 50,
    ):
        self.page_fetcher = page_fetcher
        self.min_length = min_length
        self.readability_min_length = readability_min_length
        self.paragraph_min_length = paragraph_min_length

    def parse(self, page: FetchedPage) -> Optional[ParsedPage]:
        if not page.ok or not page.html:
            return None
        return parse_page(
            page.html,
            page.final_url,
            readability_min_length=self.readability_min_length,
            paragraph_min_length=self.paragraph_min_length,
        )

    def to_content(self, page: FetchedPage, parsed: Optional[ParsedPage]) -> ExtractedContent:
        if parsed is None:
            return ExtractedContent.failure(final_url=page.final_url)

        success = len(parsed.body_text) > self.min_length
        return ExtractedContent(
            body_text=parsed.body_text if success else "",
            raw_images=list(parsed.images) if success else [],
            strategy_used=ExtractionStrategy.PRIMARY if success else None,
            success=success,
            title=parsed.title,
            author=parsed.author,
            published_at=parsed.published_at,
            final_url=page.final_url,
        )

    async def fetch_and_parse(self, url: str) -> Tuple[FetchedPage, Optional[ParsedPage]]:
        page = await self.page_fetcher.fetch(url)
        return page, self.parse(page)

    async def extract(self, url: str) -> ExtractedContent:
        page, parsed = await self.fetch_and_parse(url)
        return self.to_content(page, parsed)
