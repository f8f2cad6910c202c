"""Image URL discovery and rewriting for post HTML."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional

from ..models import ContentItem

_IMG_SRC = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)


def extract_image_urls(html: str) -> List[str]:
    """Return absolute http(s) ``<img src>`` values in document order."""
    return [
        src for src in _IMG_SRC.findall(html or "") if src.startswith(("http://", "https://"))
    ]


def collect_image_urls(items: Iterable[ContentItem]) -> List[str]:
    """Collect feature images and inline images, deduplicated in first-seen order."""
    seen: Dict[str, None] = {}
    for item in items:
        if item.feature_image:
            seen.setdefault(item.feature_image, None)
        for url in extract_image_urls(item.html):
            seen.setdefault(url, None)
    return list(seen)


def rewrite_html(html: str, image_map: Dict[str, str]) -> str:
    if not image_map or not html:
        return html
    # Longest first so a URL that prefixes another is not rewritten inside it.
    for original in sorted(image_map, key=len, reverse=True):
        html = html.replace(original, image_map[original])
    return html


def rewrite_feature_image(feature_image: Optional[str], image_map: Dict[str, str]) -> Optional[str]:
    if not feature_image:
        return None
    return image_map.get(feature_image, feature_image)


def lazy_load_images(html: str) -> str:
    """Add ``loading="lazy"`` to ``<img>`` tags that do not declare loading."""
    return re.sub(r"<img (?![^>]*\bloading=)", '<img loading="lazy" ', html or "")


__all__ = [
    "collect_image_urls",
    "extract_image_urls",
    "lazy_load_images",
    "rewrite_feature_image",
    "rewrite_html",
]
