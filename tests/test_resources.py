"""Tests for ghostsite.resources."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

import pytest

from ghostsite import resources
from ghostsite.resources import (
    FetchError,
    ResourceFetcher,
    derive_filename,
    hash_url,
    urllib_downloader,
)
from tests._fixtures.doubles import RecordingDownloader

URLS = [f"https://cms.example.com/content/images/photo-{index}.jpg" for index in range(5)]


def test_derive_filename_keeps_stem_and_extension() -> None:
    url = "https://cms.example.com/content/images/2024/01/photo.jpg"

    assert derive_filename(url) == f"photo-{hash_url(url)}.jpg"


def test_derive_filename_falls_back_to_hash() -> None:
    url = "https://cms.example.com/content/images/"

    assert derive_filename(url) == hash_url(url)
    assert derive_filename("https://cms.example.com/avatar") == hash_url(
        "https://cms.example.com/avatar"
    )


def test_derive_filename_sanitises_stem() -> None:
    url = "https://cms.example.com/images/my%20photo%3F.png?w=300"

    name = derive_filename(url)

    assert name.startswith("my_photo_-")
    assert name.endswith(".png")


def test_derive_filename_is_distinct_for_distinct_urls() -> None:
    first = derive_filename("https://a.example.com/photo.jpg")
    second = derive_filename("https://b.example.com/photo.jpg")

    assert first != second


def test_fetch_writes_files_and_maps_local_paths(tmp_path: Path) -> None:
    downloader = RecordingDownloader()
    fetcher = ResourceFetcher(concurrency=2, downloader=downloader)

    mapping = fetcher.fetch(URLS, tmp_path / "images", url_prefix="/blog/images/")

    assert list(mapping) == URLS
    for url, local in mapping.items():
        filename = derive_filename(url)
        assert local == f"/blog/images/{filename}"
        assert (tmp_path / "images" / filename).read_bytes() == f"bytes for {url}".encode("utf-8")


def test_second_run_is_idempotent(tmp_path: Path) -> None:
    downloader = RecordingDownloader()
    fetcher = ResourceFetcher(downloader=downloader)

    first = fetcher.fetch(URLS, tmp_path, url_prefix="/blog/images")
    calls_after_first = len(downloader.calls)
    second = fetcher.fetch(URLS, tmp_path, url_prefix="/blog/images")

    assert calls_after_first == len(URLS)
    assert len(downloader.calls) == calls_after_first
    assert second == first


def test_failed_download_is_omitted_and_logged_once(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    downloader = RecordingDownloader(failing=[URLS[2]])
    fetcher = ResourceFetcher(concurrency=3, downloader=downloader)

    with caplog.at_level(logging.WARNING, logger="ghostsite.resources"):
        mapping = fetcher.fetch(URLS, tmp_path)

    assert len(mapping) == 4
    assert URLS[2] not in mapping
    warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert URLS[2] in warnings[0].getMessage()
    assert not (tmp_path / derive_filename(URLS[2])).exists()


def test_duplicate_urls_are_fetched_once(tmp_path: Path) -> None:
    downloader = RecordingDownloader()
    fetcher = ResourceFetcher(downloader=downloader)

    mapping = fetcher.fetch([URLS[0], URLS[1], URLS[0]], tmp_path)

    assert sorted(downloader.calls) == sorted([URLS[0], URLS[1]])
    assert list(mapping) == [URLS[0], URLS[1]]


def test_empty_batch_returns_empty_mapping(tmp_path: Path) -> None:
    fetcher = ResourceFetcher(downloader=RecordingDownloader())

    assert fetcher.fetch([], tmp_path / "images") == {}
    assert not (tmp_path / "images").exists()


def test_concurrency_is_bounded(tmp_path: Path) -> None:
    active = 0
    peak = 0
    lock = threading.Lock()

    def downloader(url: str) -> bytes:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1
        return b"data"

    urls = [f"https://cms.example.com/{index}.png" for index in range(12)]
    fetcher = ResourceFetcher(concurrency=3, downloader=downloader)

    mapping = fetcher.fetch(urls, tmp_path)

    assert len(mapping) == 12
    assert 1 <= peak <= 3


def test_retries_recover_from_transient_failure(tmp_path: Path) -> None:
    attempts = []

    def flaky(url: str) -> bytes:
        attempts.append(url)
        if len(attempts) == 1:
            raise FetchError("status 503")
        return b"ok"

    fetcher = ResourceFetcher(retries=1, downloader=flaky)

    mapping = fetcher.fetch([URLS[0]], tmp_path)

    assert len(attempts) == 2
    assert URLS[0] in mapping


def test_no_retries_by_default(tmp_path: Path) -> None:
    downloader = RecordingDownloader(failing=[URLS[0]])
    fetcher = ResourceFetcher(downloader=downloader)

    assert fetcher.fetch([URLS[0]], tmp_path) == {}
    assert downloader.calls == [URLS[0]]


def test_failed_download_leaves_no_partial_files(tmp_path: Path) -> None:
    downloader = RecordingDownloader(failing=URLS)
    fetcher = ResourceFetcher(downloader=downloader)

    fetcher.fetch(URLS, tmp_path)

    assert list(tmp_path.iterdir()) == []


def test_invalid_settings_are_rejected() -> None:
    with pytest.raises(ValueError):
        ResourceFetcher(concurrency=0)
    with pytest.raises(ValueError):
        ResourceFetcher(retries=-1)


def test_unexpected_downloader_error_drops_only_that_url(tmp_path: Path) -> None:
    def downloader(url: str) -> bytes:
        if url == URLS[3]:
            raise ValueError("URL can't contain control characters")
        return b"data"

    fetcher = ResourceFetcher(concurrency=2, downloader=downloader)

    mapping = fetcher.fetch(URLS, tmp_path)

    assert len(mapping) == 4
    assert URLS[3] not in mapping


@pytest.mark.parametrize(
    "url",
    ["https://cdn.example.com/my photo.jpg", "cms.example.com/no-scheme.png"],
)
def test_urllib_downloader_maps_malformed_urls_to_fetch_error(url: str) -> None:
    with pytest.raises(FetchError):
        urllib_downloader(timeout=1)(url)


def test_malformed_url_next_to_mirrored_file(tmp_path: Path) -> None:
    existing = "https://cdn.example.com/cover.jpg"
    (tmp_path / derive_filename(existing)).write_bytes(b"cached")
    fetcher = ResourceFetcher(timeout=1)

    mapping = fetcher.fetch([existing, "https://cdn.example.com/my photo.jpg"], tmp_path, "/blog/images")

    assert mapping == {existing: f"/blog/images/{derive_filename(existing)}"}


def test_write_failure_drops_only_that_url(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    real_write = resources._write_atomic

    def flaky_write(target: Path, payload: bytes) -> None:
        if target.name == derive_filename(URLS[1]):
            raise OSError(28, "No space left on device")
        real_write(target, payload)

    monkeypatch.setattr(resources, "_write_atomic", flaky_write)
    fetcher = ResourceFetcher(downloader=RecordingDownloader())

    mapping = fetcher.fetch(URLS, tmp_path)

    assert list(mapping) == [url for url in URLS if url != URLS[1]]
    assert not (tmp_path / derive_filename(URLS[1])).exists()
