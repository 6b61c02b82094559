"""
Markup helpers shared by the feed fetcher and the extractors
"""
import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from core.entities import RawImage

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def strip_markup(html: str) -> str:
    """
    Plain text of an HTML fragment, entities decoded and whitespace collapsed.
    """
    if not html:
        return ""
    if "<" not in html and "&" not in html:
        return collapse_whitespace(html)
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return collapse_whitespace(soup.get_text(" "))


def _int_attr(value) -> Optional[int]:
    if value is None:
        return None
    match = re.match(r"\s*(\d+)", str(value))
    return int(match.group(1)) if match else None


def resolve_image_url(src: Optional[str], base_url: Optional[str]) -> Optional[str]:
    """
    Absolute http(s) URL for an image src, or None when it cannot be resolved.
    data: and blob: sources are discarded.
    """
    if not src:
        return None
    src = src.strip()
    if not src or src.startswith(("data:", "blob:", "javascript:")):
        return None

    if src.startswith("//"):
        scheme = urlparse(base_url).scheme if base_url else ""
        return f"{scheme or 'https'}:{src}"

    if src.startswith(("http://", "https://")):
        return src

    if not base_url:
        return None
    resolved = urljoin(base_url, src)
    return resolved if resolved.startswith(("http://", "https://")) else None


def images_from_soup(soup: BeautifulSoup, base_url: Optional[str], origin: str = "page") -> List[RawImage]:
    images: List[RawImage] = []
    for img in soup.find_all("img"):
        src = img.get("src") or img.get("data-src") or img.get("data-lazy-src") or img.get("data-original")
        if (not src or src.startswith("data:")) and img.get("srcset"):
            # last srcset candidate is usually the largest
            src = img["srcset"].split(",")[-1].strip().split(" ")[0]
        url = resolve_image_url(src, base_url)
        if not url:
            continue
        images.append(
            RawImage(
                url=url,
                alt=collapse_whitespace(img.get("alt") or ""),
                width=_int_attr(img.get("width")),
                height=_int_attr(img.get("height")),
                origin=origin,
            )
        )
    return images


def images_from_html(html: str, base_url: Optional[str], origin: str = "page") -> List[RawImage]:
    if not html or "<img" not in html.lower():
        return []
    return images_from_soup(BeautifulSoup(html, "lxml"), base_url, origin=origin)
