"""Build orchestration: fetch, transform and generate one site at a time."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from .content.ghost import ContentSource, GhostClient
from .content.images import collect_image_urls, rewrite_feature_image, rewrite_html
from .content.staging import stage_site
from .generator.command import CommandGenerator, Generator
from .lifecycle import LifecycleCoordinator
from .logging import get_logger
from .metrics import BuildMetrics
from .models import AppConfig, BuildOutcome, BuildRecord, ContentItem, SiteConfig
from .resources import ResourceFetcher

BuildListener = Callable[[BuildRecord], None]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Orchestrator:
    """Drives site builds and reports their timing and outcome into metrics.

    This is the only component that talks to the generator. Every build is
    registered with the lifecycle coordinator so shutdown can drain it.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        lifecycle: LifecycleCoordinator,
        metrics: BuildMetrics | None = None,
        content: ContentSource | None = None,
        generator: Generator | None = None,
        fetcher: ResourceFetcher | None = None,
        timer: Callable[[], float] = time.perf_counter,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.lifecycle = lifecycle
        self.metrics = metrics or BuildMetrics()
        self.content = content or GhostClient()
        self._generator_override = generator
        self._fetcher_override = fetcher
        self._timer = timer
        self._wall_clock = wall_clock
        self._listeners: List[BuildListener] = []
        self._config_lock = threading.Lock()
        self.logger = get_logger("orchestrator")
        self._config = config
        self._generator, self._fetcher = self._collaborators_for(config)

    @property
    def config(self) -> AppConfig:
        with self._config_lock:
            return self._config

    def update_config(self, config: AppConfig) -> None:
        """Replace the whole configuration; builds already running keep the old one."""
        generator, fetcher = self._collaborators_for(config)
        with self._config_lock:
            self._config = config
            self._generator = generator
            self._fetcher = fetcher
        self.logger.info("Configuration replaced (%d site(s))", len(config.sites))

    def add_listener(self, listener: BuildListener) -> None:
        """Call ``listener`` after every successful build."""
        self._listeners.append(listener)

    def find_site(self, subpath: str) -> Optional[SiteConfig]:
        wanted = subpath.strip("/")
        for site in self.config.sites:
            if site.subpath == wanted:
                return site
        return None

    def build_all(self, *, dev: bool = False) -> List[BuildRecord]:
        sites = self.config.sites
        self.logger.info("Building all sites (%d)", len(sites))
        records = [self.build_site(site, dev=dev) for site in sites]
        self.logger.info("All sites built")
        return records

    def build_site(self, site: SiteConfig, *, dev: bool = False) -> BuildRecord:
        with self.lifecycle.track_build() as admitted:
            if not admitted:
                self.logger.warning("Skipping build of %s, shutdown in progress", site.title)
                return BuildRecord(
                    site=site.title,
                    subpath=site.subpath,
                    started_at=self._wall_clock(),
                    outcome=BuildOutcome.SKIPPED,
                    message="shutdown in progress",
                )
            record = self._build(site, dev)

        if record.outcome is BuildOutcome.SUCCESS:
            for listener in list(self._listeners):
                try:
                    listener(record)
                except Exception as exc:
                    self.logger.error("Build listener failed: %s", exc)
        return record

    def _build(self, site: SiteConfig, dev: bool) -> BuildRecord:
        with self._config_lock:
            config = self._config
            generator = self._generator
            fetcher = self._fetcher

        labels = site.labels
        started_at = self._wall_clock()
        build_start = self._timer()

        self.logger.info("Fetching posts for %s (/%s)", site.title, site.subpath)
        fetch_start = self._timer()
        try:
            items = self.content.fetch_items(site)
        except Exception as exc:
            self.metrics.fetch_errors.labels(**labels).inc()
            self.logger.error("Failed to fetch posts for %s: %s", site.title, exc)
            return BuildRecord(
                site=site.title,
                subpath=site.subpath,
                started_at=started_at,
                outcome=BuildOutcome.FETCH_ERROR,
                duration=self._timer() - build_start,
                message=str(exc),
            )
        fetch_seconds = self._timer() - fetch_start
        self.metrics.fetch_duration.labels(**labels).observe(fetch_seconds)
        self.metrics.posts_count.labels(**labels).set(len(items))
        self.logger.info(
            "Fetched %d post(s) for %s in %.2fs (%s)",
            len(items),
            site.title,
            fetch_seconds,
            site.sort_order,
        )

        output_dir = Path(config.output_dir).resolve() / site.subpath
        work_dir = Path(config.work_dir).resolve() / site.subpath
        theme_dir = Path(config.theme_dir).resolve()

        try:
            items = sort_items(items, site.sort_order)
            if fetcher is not None:
                items = self._mirror_images(site, items, fetcher, output_dir / "images")
            stage_site(site, items, work_dir, theme_dir=theme_dir, dev=dev)
            self.logger.info("Generating %s into %s", site.title, output_dir)
            result = generator.render(work_dir, output_dir, f"/{site.subpath}/")
            ok, message = result.ok, result.message
        except Exception as exc:
            ok, message = False, str(exc)

        duration = self._timer() - build_start
        self.metrics.builds_total.labels(**labels).inc()
        if not ok:
            self.metrics.build_errors.labels(**labels).inc()
            self.logger.error("Build failed for %s: %s", site.title, message)
            return BuildRecord(
                site=site.title,
                subpath=site.subpath,
                started_at=started_at,
                outcome=BuildOutcome.BUILD_ERROR,
                duration=duration,
                message=message,
            )

        self.metrics.build_duration.labels(**labels).observe(duration)
        self.metrics.last_build_timestamp.labels(**labels).set(self._wall_clock())
        self.logger.info("Build complete for %s in %.2fs", site.title, duration)
        return BuildRecord(
            site=site.title,
            subpath=site.subpath,
            started_at=started_at,
            outcome=BuildOutcome.SUCCESS,
            duration=duration,
        )

    def _mirror_images(
        self,
        site: SiteConfig,
        items: List[ContentItem],
        fetcher: ResourceFetcher,
        images_dir: Path,
    ) -> List[ContentItem]:
        urls = collect_image_urls(items)
        if not urls:
            return items
        image_map = fetcher.fetch(urls, images_dir, f"/{site.subpath}/images")
        self.metrics.images_available.labels(**site.labels).set(len(image_map))
        missing = len(urls) - len(image_map)
        if missing:
            self.metrics.image_errors.labels(**site.labels).inc(missing)
        for item in items:
            item.html = rewrite_html(item.html, image_map)
            item.feature_image = rewrite_feature_image(item.feature_image, image_map)
        return items

    def _collaborators_for(self, config: AppConfig):
        generator = self._generator_override or CommandGenerator(config.generator.command)
        fetcher = self._fetcher_override
        if fetcher is None and config.images.enabled:
            fetcher = ResourceFetcher(
                concurrency=config.images.concurrency,
                retries=config.images.retries,
                timeout=config.images.timeout,
            )
        if not config.images.enabled:
            fetcher = None
        return generator, fetcher


def sort_items(items: List[ContentItem], order: str) -> List[ContentItem]:
    """Order items by publish time; unpublished items sort as oldest."""
    return sorted(items, key=_published_key, reverse=order != "asc")


def _published_key(item: ContentItem) -> datetime:
    if not item.published_at:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(item.published_at.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


__all__ = ["BuildListener", "Orchestrator", "sort_items"]
