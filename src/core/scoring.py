"""
Module to score every discovered image
"""

import re
from typing import Optional, Tuple
from urllib.parse import urlparse

from core.entities import RawImage

# URL patterns carrying dimensions, e.g. ".../photo-1200x675.jpg" or "?w=800&h=450"
_DIMENSION_PATTERN = re.compile(r"(\d{2,4})x(\d{2,4})")
_QUERY_WIDTH_PATTERN = re.compile(r"[?&](?:w|width)=(\d{2,4})")
_QUERY_HEIGHT_PATTERN = re.compile(r"[?&](?:h|height)=(\d{2,4})")
# BBC-style width-only paths: /news/976/cpsprodpb/...
_PATH_WIDTH_PATTERN = re.compile(r"/(?:news|ace/standard|ace/ws)/(\d{3,4})/")

PENALTY_KEYWORDS = ("thumb", "icon", "logo", "avatar", "sprite", "badge", "spacer", "pixel", "1x1")
SOFT_PENALTY_KEYWORDS = ("small", "placeholder", "blank")
PROVENANCE_KEYWORDS = ("gettyimages", "reuters", "apnews", "afp", "epa", "shutterstock")
HIGH_RES_PATTERN = re.compile(r"(high-res|hires|\bhd\b|original|large)")

FORMAT_BONUS = {
    "webp": 12,
    "jpg": 10,
    "jpeg": 10,
    "png": 8,
}


def _format_of(url: str) -> Optional[str]:
    path = urlparse(url).path.lower()
    match = re.search(r"\.([a-z0-9]{3,4})$", path)
    if match:
        return match.group(1)
    query = urlparse(url).query.lower()
    fmt = re.search(r"(?:format|fm)=([a-z]{3,4})", query)
    return fmt.group(1) if fmt else None


def image_dimensions(image: RawImage) -> Tuple[Optional[int], Optional[int]]:
    """
    Declared dimensions win over dimensions inferred from the URL.
    """
    width, height = image.width, image.height
    if width and height:
        return width, height

    url = image.url.lower()
    match = _DIMENSION_PATTERN.search(url)
    if match:
        return width or int(match.group(1)), height or int(match.group(2))

    qw = _QUERY_WIDTH_PATTERN.search(url)
    qh = _QUERY_HEIGHT_PATTERN.search(url)
    if qw or qh:
        return (
            width or (int(qw.group(1)) if qw else None),
            height or (int(qh.group(1)) if qh else None),
        )

    pw = _PATH_WIDTH_PATTERN.search(url)
    if pw:
        return width or int(pw.group(1)), height

    return width, height


def _size_score(width: Optional[int], height: Optional[int]) -> int:
    if width and height:
        if width > 300 and height > 200:
            return 30
        if width > 200 and height > 150:
            return 20
        if width > 100 and height > 100:
            return 10
        return 0

    edge = width or height
    if not edge:
        return 0
    if edge > 600:
        return 25
    if edge > 400:
        return 20
    if edge > 200:
        return 15
    return 0


def _aspect_score(width: Optional[int], height: Optional[int]) -> int:
    if not width or not height:
        return 0
    ratio = width / height
    if 1.2 <= ratio <= 2.0:
        return 15
    if 1.0 <= ratio < 1.2 or 2.0 < ratio <= 2.5:
        return 5
    return 0


def score_image(image: RawImage) -> int:
    """
    Deterministic desirability score for an image, computed only from
    observable attributes. Never negative.
    """
    url = image.url.lower()
    width, height = image_dimensions(image)

    score = _size_score(width, height)
    score += _aspect_score(width, height)
    score += FORMAT_BONUS.get(_format_of(url) or "", 0)

    if HIGH_RES_PATTERN.search(url):
        score += 15
    if "production" in url:
        score += 5
    if any(k in url for k in PROVENANCE_KEYWORDS):
        score += 10

    if any(k in url for k in PENALTY_KEYWORDS):
        score -= 40
    if any(k in url for k in SOFT_PENALTY_KEYWORDS):
        score -= 10

    return max(0, score)
