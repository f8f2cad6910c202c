"""Client for the Ghost Content API."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from ..logging import get_logger
from ..models import ContentItem, SiteConfig

API_VERSION = "v5.0"

Transport = Callable[[str, Mapping[str, str]], bytes]


class ContentError(RuntimeError):
    """Raised when content cannot be fetched for a site."""


class ContentSource(Protocol):
    def fetch_items(self, site: SiteConfig) -> List[ContentItem]:
        ...


@dataclass
class TagSummary:
    """A tag and the number of posts carrying it."""

    name: str
    slug: str
    post_count: Optional[int]


def _http_transport(url: str, headers: Mapping[str, str]) -> bytes:
    request = Request(url, headers=dict(headers))
    try:
        with urlopen(request) as response:  # noqa: S310 - configured CMS endpoint
            return response.read()
    except HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="ignore") if hasattr(exc, "read") else ""
        if exc.code in (401, 403):
            raise ContentError(f"Ghost rejected the content API key (status {exc.code})") from exc
        message = detail.strip() or exc.reason
        raise ContentError(f"Ghost request failed with status {exc.code}: {message}") from exc
    except URLError as exc:
        raise ContentError(f"Ghost request failed: {exc.reason}") from exc


class GhostClient:
    """Fetches posts and tags for a site through the Ghost Content API."""

    def __init__(self, transport: Transport | None = None) -> None:
        self._transport = transport or _http_transport
        self.logger = get_logger("content.ghost")

    def fetch_items(self, site: SiteConfig) -> List[ContentItem]:
        params = {"limit": "all", "include": "tags,authors"}
        if site.tag:
            params["filter"] = f"tag:{site.tag}"
        payload = self._get(site, "posts", params)
        posts = payload.get("posts")
        if not isinstance(posts, list):
            raise ContentError("Ghost response did not contain a 'posts' list")
        return [_item_from_payload(post) for post in posts if isinstance(post, dict)]

    def fetch_tags(self, site: SiteConfig) -> List[TagSummary]:
        payload = self._get(site, "tags", {"limit": "all", "include": "count.posts"})
        tags = payload.get("tags")
        if not isinstance(tags, list):
            raise ContentError("Ghost response did not contain a 'tags' list")
        summaries: List[TagSummary] = []
        for tag in tags:
            if not isinstance(tag, dict):
                continue
            count = tag.get("count")
            post_count = count.get("posts") if isinstance(count, dict) else None
            summaries.append(
                TagSummary(
                    name=str(tag.get("name", "")),
                    slug=str(tag.get("slug", "")),
                    post_count=post_count if isinstance(post_count, int) else None,
                )
            )
        return summaries

    def _get(self, site: SiteConfig, resource: str, params: Dict[str, str]) -> Dict[str, Any]:
        query = urlencode({"key": site.ghost_api_key, **params})
        url = f"{site.ghost_url}/ghost/api/content/{resource}/?{query}"
        self.logger.debug("GET %s/ghost/api/content/%s/", site.ghost_url, resource)
        raw = self._transport(url, {"Accept-Version": API_VERSION, "Accept": "application/json"})
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ContentError("Ghost returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise ContentError("Ghost returned an unexpected payload")
        return data


def _item_from_payload(post: Mapping[str, Any]) -> ContentItem:
    return ContentItem(
        id=str(post.get("id", "")),
        slug=str(post.get("slug", "")),
        title=str(post.get("title") or ""),
        html=str(post.get("html") or ""),
        excerpt=str(post.get("custom_excerpt") or post.get("excerpt") or ""),
        feature_image=post.get("feature_image") or None,
        published_at=post.get("published_at") or None,
        tags=_labels(post.get("tags")),
        authors=_labels(post.get("authors")),
    )


def _labels(value: Any) -> List[Dict[str, str]]:
    if not isinstance(value, list):
        return []
    return [
        {"name": str(entry.get("name", "")), "slug": str(entry.get("slug", ""))}
        for entry in value
        if isinstance(entry, dict)
    ]


__all__ = ["ContentError", "ContentSource", "GhostClient", "TagSummary"]
