"""
Image deduplication, scoring and usage classification
"""
import logging
from dataclasses import replace
from typing import Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from core.entities import ImageUsage, RawImage, ScoredImage
from core.scoring import image_dimensions, score_image

logger = logging.getLogger(__name__)

HERO_MIN_SCORE = 45
GALLERY_MIN_SCORE = 20
MAX_GALLERY = 10
RESIZE_PARAMS = {"w", "h", "width", "height", "fit", "crop", "quality", "q", "resize", "dpr"}


def _dedupe_key(url: str) -> str:
    # Variants of one image that differ only in resize/crop params share a key
    parsed = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k.lower() not in RESIZE_PARAMS]
    return urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), parsed.path, parsed.params, urlencode(sorted(query)), "")
    )


def usage_for(image: ScoredImage) -> Optional[ImageUsage]:
    ratio = image.aspect_ratio
    if image.score >= HERO_MIN_SCORE and (ratio is None or 1.2 <= ratio <= 2.5):
        return ImageUsage.HERO
    if image.score >= GALLERY_MIN_SCORE:
        if ratio is not None and 0.8 <= ratio <= 1.5:
            return ImageUsage.THUMBNAIL
        return ImageUsage.GALLERY
    if image.score > 0:
        return ImageUsage.THUMBNAIL
    return None


class ImageOptimizer:
    def optimize(self, raw_images: List[RawImage]) -> List[ScoredImage]:
        """
        Deduplicate, score and classify images, keeping discovery order.
        """
        seen = set()
        scored: List[ScoredImage] = []

        for raw in raw_images:
            key = _dedupe_key(raw.url)
            if key in seen:
                continue
            seen.add(key)

            width, height = image_dimensions(raw)
            image = ScoredImage(
                url=raw.url,
                alt=raw.alt,
                width=width,
                height=height,
                score=score_image(raw),
            )
            scored.append(replace(image, usage_class=usage_for(image)))

        if len(raw_images) != len(scored):
            logger.debug(f"Image dedupe: {len(raw_images)} -> {len(scored)}")
        return scored

    @staticmethod
    def best_image(scored: List[ScoredImage]) -> Optional[ScoredImage]:
        """Highest score; the earliest discovered image wins ties."""
        best: Optional[ScoredImage] = None
        for image in scored:
            if best is None or image.score > best.score:
                best = image
        return best

    @staticmethod
    def classify(scored: List[ScoredImage]) -> Dict[str, List[ScoredImage]]:
        buckets: Dict[str, List[ScoredImage]] = {usage.value: [] for usage in ImageUsage}
        for image in scored:
            usage = image.usage_class or usage_for(image)
            if usage is None:
                continue
            if usage == ImageUsage.GALLERY and len(buckets[usage.value]) >= MAX_GALLERY:
                continue
            buckets[usage.value].append(image)
        return buckets
