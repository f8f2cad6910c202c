"""Bounded-concurrency mirroring of remote resources (images) to local files."""

from __future__ import annotations

import hashlib
import os
import posixpath
import queue
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from http.client import HTTPException
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import unquote, urlparse
from urllib.request import Request, urlopen

from . import __version__
from .logging import get_logger

USER_AGENT = f"ghostsite/{__version__}"
DEFAULT_CONCURRENCY = 6

Downloader = Callable[[str], bytes]


class FetchError(RuntimeError):
    """Raised when a single resource cannot be downloaded."""


def hash_url(url: str) -> str:
    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]


def derive_filename(url: str) -> str:
    """Return a deterministic local filename for ``url``.

    ``photo.jpg`` becomes ``photo-<hash>.jpg``; URLs without a usable last
    segment or extension fall back to the bare hash.
    """
    digest = hash_url(url)
    try:
        path = urlparse(url).path
    except ValueError:
        return digest
    base = posixpath.basename(unquote(path))
    stem, ext = posixpath.splitext(base)
    if ext and stem and len(base) > 1:
        safe_stem = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in stem[:40])
        safe_ext = "".join(ch for ch in ext if ch.isalnum() or ch == ".")
        if safe_ext != ".":
            return f"{safe_stem}-{digest}{safe_ext}"
    return digest


def urllib_downloader(
    *, timeout: Optional[float] = None, user_agent: str = USER_AGENT
) -> Downloader:
    """Return a downloader that fetches bytes with :mod:`urllib.request`."""

    def _download(url: str) -> bytes:
        try:
            request = Request(url, headers={"User-Agent": user_agent})
            if timeout is None:
                response = urlopen(request)  # noqa: S310 - URLs come from the CMS
            else:
                response = urlopen(request, timeout=timeout)  # noqa: S310
            with response:
                status = getattr(response, "status", 200)
                if status < 200 or status >= 300:
                    raise FetchError(f"unexpected status {status}")
                return response.read()
        except HTTPError as exc:
            raise FetchError(f"status {exc.code}") from exc
        except URLError as exc:
            raise FetchError(str(exc.reason)) from exc
        except (HTTPException, OSError, ValueError) as exc:
            # Malformed URLs (spaces, unknown schemes) and truncated bodies.
            raise FetchError(f"{type(exc).__name__}: {exc}") from exc

    return _download


class ResourceFetcher:
    """Downloads a batch of URLs with a bounded pool of greedy workers.

    Workers pull from one shared queue until it is empty, so faster workers
    absorb more of the batch. A destination file that already exists counts
    as fetched. Failures are logged and the URL is left out of the result;
    there are no retries unless ``retries`` is raised above zero.
    """

    def __init__(
        self,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        retries: int = 0,
        timeout: Optional[float] = None,
        downloader: Downloader | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if retries < 0:
            raise ValueError("retries must not be negative")
        self.concurrency = concurrency
        self.retries = retries
        self._download = downloader or urllib_downloader(timeout=timeout)
        self.logger = get_logger("resources")

    def fetch(
        self,
        urls: Iterable[str],
        dest_dir: Path,
        url_prefix: str = "",
    ) -> Dict[str, str]:
        """Mirror ``urls`` into ``dest_dir`` and map each fetched URL to its local path.

        ``url_prefix`` is joined with the derived filename to build the mapped
        path (for example ``/blog/images``).
        """
        unique = list(dict.fromkeys(urls))
        if not unique:
            return {}

        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        prefix = url_prefix.rstrip("/")

        work: "queue.Queue[str]" = queue.Queue()
        for url in unique:
            work.put(url)

        results: Dict[str, str] = {}
        failures: List[str] = []
        lock = threading.Lock()

        def worker() -> None:
            while True:
                try:
                    url = work.get_nowait()
                except queue.Empty:
                    return
                filename = derive_filename(url)
                target = dest_dir / filename
                local_path = f"{prefix}/{filename}"
                if target.exists() or self._fetch_one(url, target):
                    with lock:
                        results[url] = local_path
                else:
                    with lock:
                        failures.append(url)

        workers = min(self.concurrency, len(unique))
        self.logger.info("Downloading %d resource(s) with %d worker(s)", len(unique), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fetch") as pool:
            futures = [pool.submit(worker) for _ in range(workers)]
            for future in futures:
                future.result()

        self.logger.info(
            "Resources available: %d of %d (%d failed)", len(results), len(unique), len(failures)
        )
        # Deterministic ordering regardless of which worker finished first.
        return {url: results[url] for url in unique if url in results}

    def _fetch_one(self, url: str, target: Path) -> bool:
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                payload = self._download(url)
                _write_atomic(target, payload)
            except Exception as exc:
                # Any failure drops only this URL from the batch.
                if attempt < attempts:
                    self.logger.debug("Retrying %s after failure: %s", url, exc)
                    continue
                self.logger.warning("Resource download failed for %s: %s", url, exc)
                return False
            self.logger.debug("Downloaded %s (%d bytes)", url, len(payload))
            return True
        return False


def _write_atomic(target: Path, payload: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=".partial-", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


__all__ = [
    "DEFAULT_CONCURRENCY",
    "Downloader",
    "FetchError",
    "ResourceFetcher",
    "derive_filename",
    "hash_url",
    "urllib_downloader",
]
