"""Prometheus instruments for site builds and resource mirroring.

Every instrument is labelled by ``site`` and ``subpath`` and registered on a
:class:`~prometheus_client.CollectorRegistry` owned by :class:`BuildMetrics`,
so a process holds exactly one set and tests can build isolated ones.
"""

from __future__ import annotations

from typing import Mapping, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

DEFAULT_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60)
CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"
SITE_LABELS = ("site", "subpath")


class BuildMetrics:
    """Process-wide instruments, created once at startup."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        reg = self.registry

        # Durations
        self.build_duration = Histogram(
            "ghostsite_build_duration_seconds",
            "Time to build a site in seconds",
            SITE_LABELS,
            buckets=DEFAULT_BUCKETS,
            registry=reg,
        )
        self.fetch_duration = Histogram(
            "ghostsite_fetch_duration_seconds",
            "Time to fetch posts from Ghost in seconds",
            SITE_LABELS,
            buckets=DEFAULT_BUCKETS,
            registry=reg,
        )

        # Totals
        self.builds_total = Counter(
            "ghostsite_builds_total", "Total number of builds", SITE_LABELS, registry=reg
        )
        self.build_errors = Counter(
            "ghostsite_build_errors_total", "Total number of build errors", SITE_LABELS, registry=reg
        )
        self.fetch_errors = Counter(
            "ghostsite_fetch_errors_total",
            "Total number of Ghost fetch errors",
            SITE_LABELS,
            registry=reg,
        )
        self.image_errors = Counter(
            "ghostsite_image_errors_total",
            "Total number of images that failed to download",
            SITE_LABELS,
            registry=reg,
        )

        # Current state
        self.posts_count = Gauge(
            "ghostsite_posts_count", "Number of posts fetched per site", SITE_LABELS, registry=reg
        )
        self.last_build_timestamp = Gauge(
            "ghostsite_last_build_timestamp_seconds",
            "Unix timestamp of last successful build",
            SITE_LABELS,
            registry=reg,
        )
        self.images_available = Gauge(
            "ghostsite_images_available",
            "Number of images mirrored locally per site",
            SITE_LABELS,
            registry=reg,
        )

    def sample(self, name: str, labels: Mapping[str, str] | None = None) -> Optional[float]:
        """Return the current value of one sample, or None if it was never recorded."""
        return self.registry.get_sample_value(name, dict(labels or {}))

    def serialize(self) -> str:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry).decode("utf-8")


__all__ = ["BuildMetrics", "CONTENT_TYPE", "DEFAULT_BUCKETS", "SITE_LABELS"]
