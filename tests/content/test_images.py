"""Tests for image discovery and rewriting."""

from __future__ import annotations

from ghostsite.content.images import (
    collect_image_urls,
    extract_image_urls,
    lazy_load_images,
    rewrite_feature_image,
    rewrite_html,
)
from tests._fixtures.doubles import make_item


def test_extract_only_absolute_urls() -> None:
    html = (
        '<img src="https://cms.example.com/a.jpg">'
        "<img alt='x' src='http://cms.example.com/b.png'>"
        '<img src="/relative.gif">'
        '<img src="data:image/png;base64,AAAA">'
    )

    assert extract_image_urls(html) == [
        "https://cms.example.com/a.jpg",
        "http://cms.example.com/b.png",
    ]


def test_collect_deduplicates_in_first_seen_order() -> None:
    items = [
        make_item("one", feature_image="https://cms.example.com/cover.jpg", html='<img src="https://cms.example.com/a.jpg">'),
        make_item("two", feature_image="https://cms.example.com/a.jpg", html='<img src="https://cms.example.com/b.jpg">'),
    ]

    assert collect_image_urls(items) == [
        "https://cms.example.com/cover.jpg",
        "https://cms.example.com/a.jpg",
        "https://cms.example.com/b.jpg",
    ]


def test_rewrite_prefers_longest_match() -> None:
    image_map = {
        "https://cms.example.com/a.jpg": "/blog/images/a-1.jpg",
        "https://cms.example.com/a.jpg?size=large": "/blog/images/a-2.jpg",
    }
    html = '<img src="https://cms.example.com/a.jpg?size=large"><img src="https://cms.example.com/a.jpg">'

    assert rewrite_html(html, image_map) == '<img src="/blog/images/a-2.jpg"><img src="/blog/images/a-1.jpg">'


def test_rewrite_leaves_unmapped_urls() -> None:
    html = '<img src="https://cms.example.com/missing.jpg">'

    assert rewrite_html(html, {"https://cms.example.com/other.jpg": "/x.jpg"}) == html
    assert rewrite_html(html, {}) == html


def test_rewrite_feature_image() -> None:
    image_map = {"https://cms.example.com/cover.jpg": "/blog/images/cover-1.jpg"}

    assert rewrite_feature_image("https://cms.example.com/cover.jpg", image_map) == "/blog/images/cover-1.jpg"
    assert rewrite_feature_image("https://cms.example.com/other.jpg", image_map) == "https://cms.example.com/other.jpg"
    assert rewrite_feature_image(None, image_map) is None


def test_lazy_load_adds_attribute_once() -> None:
    html = '<img src="/a.jpg"><img loading="eager" src="/b.jpg">'

    assert lazy_load_images(html) == '<img loading="lazy" src="/a.jpg"><img loading="eager" src="/b.jpg">'
    assert lazy_load_images(lazy_load_images(html)) == lazy_load_images(html)
