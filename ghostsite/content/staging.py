"""Stage structured generator input (pages plus data files) for one site."""

from __future__ import annotations

import json
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence

from ..models import ContentItem, SiteConfig
from .images import lazy_load_images

INDEX_PAGE = """---
layout: index.njk
permalink: /
---
"""


@dataclass
class StagedSite:
    """Paths produced by :func:`stage_site`."""

    work_dir: Path
    pages: List[Path]


def stage_site(
    site: SiteConfig,
    items: Sequence[ContentItem],
    work_dir: Path,
    *,
    theme_dir: Path | None = None,
    dev: bool = False,
) -> StagedSite:
    """Rebuild ``work_dir`` from scratch with one page per item and shared data files."""
    if work_dir.exists():
        shutil.rmtree(work_dir)
    work_dir.mkdir(parents=True)

    if theme_dir is not None:
        includes = theme_dir / "_includes"
        if includes.is_dir():
            shutil.copytree(includes, work_dir / "_includes")
        assets = theme_dir / "css"
        if assets.is_dir():
            shutil.copytree(assets, work_dir / "css")

    (work_dir / "index.njk").write_text(INDEX_PAGE, encoding="utf-8")

    posts_dir = work_dir / "posts"
    posts_dir.mkdir()
    pages: List[Path] = []
    for item in items:
        front_matter = {
            "layout": "post.njk",
            "title": item.title,
            "slug": item.slug,
            "published_at": item.published_at,
            "feature_image": item.feature_image,
            "excerpt": (item.excerpt or "").replace("\n", " "),
            "tags": item.tags,
            "authors": item.authors,
            "permalink": f"/posts/{item.slug}/",
        }
        page = posts_dir / f"{item.slug}.njk"
        page.write_text(
            "---json\n"
            + json.dumps(front_matter, indent=2, ensure_ascii=False)
            + "\n---\n"
            + lazy_load_images(item.html),
            encoding="utf-8",
        )
        pages.append(page)

    data_dir = work_dir / "_data"
    data_dir.mkdir()
    _write_json(data_dir / "posts.json", [_post_summary(item) for item in items])
    _write_json(
        data_dir / "site.json",
        {
            "siteTitle": site.title,
            "subpath": site.subpath,
            "copyright": site.copyright or "",
            "dev": dev,
            "buildTime": int(time.time() * 1000),
        },
    )
    return StagedSite(work_dir=work_dir, pages=pages)


def _post_summary(item: ContentItem) -> Dict[str, object]:
    return {
        "title": item.title,
        "slug": item.slug,
        "published_at": item.published_at,
        "feature_image": item.feature_image,
        "excerpt": item.excerpt,
        "html": lazy_load_images(item.html),
        "tags": item.tags,
    }


def _write_json(path: Path, payload: object) -> None:
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


__all__ = ["StagedSite", "stage_site"]
