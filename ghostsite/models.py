"""Core data models shared across ghostsite components."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class SiteConfig:
    """One independently configured content source and output target."""

    title: str
    subpath: str
    ghost_url: str
    ghost_api_key: str
    tag: Optional[str] = None
    sort_order: str = "desc"
    update_frequency: str = "1h"
    hostname: Optional[str] = None
    copyright: Optional[str] = None

    @property
    def labels(self) -> Dict[str, str]:
        """Metric label-set identifying this site."""
        return {"site": self.title, "subpath": self.subpath}


@dataclass(frozen=True)
class ImageSettings:
    """Image mirroring policy for builds."""

    enabled: bool = True
    concurrency: int = 6
    timeout: Optional[float] = None
    retries: int = 0


@dataclass(frozen=True)
class GeneratorSettings:
    """How the external site generator is invoked."""

    command: Tuple[str, ...] = (
        "npx",
        "@11ty/eleventy",
        "--input={input}",
        "--output={output}",
        "--pathprefix={path_prefix}",
    )


@dataclass(frozen=True)
class AppConfig:
    """Top-level settings loaded from config.yaml."""

    output_dir: str = "./dist"
    work_dir: str = "./.ghostsite-work"
    theme_dir: str = "./theme"
    sites: Tuple[SiteConfig, ...] = ()
    images: ImageSettings = field(default_factory=ImageSettings)
    generator: GeneratorSettings = field(default_factory=GeneratorSettings)


@dataclass
class ContentItem:
    """A published post as returned by the content collaborator."""

    id: str
    slug: str
    title: str
    html: str = ""
    excerpt: str = ""
    feature_image: Optional[str] = None
    published_at: Optional[str] = None
    tags: List[Dict[str, str]] = field(default_factory=list)
    authors: List[Dict[str, str]] = field(default_factory=list)


class BuildOutcome(str, Enum):
    """Terminal state of a single site build."""

    SUCCESS = "success"
    FETCH_ERROR = "fetch_error"
    BUILD_ERROR = "build_error"
    SKIPPED = "skipped"


@dataclass
class BuildRecord:
    """Ephemeral summary of one build, folded into metrics and API responses."""

    site: str
    subpath: str
    started_at: float
    outcome: BuildOutcome
    duration: float = 0.0
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (BuildOutcome.SUCCESS, BuildOutcome.SKIPPED)

    def to_dict(self) -> Dict[str, object]:
        return {
            "site": self.site,
            "subpath": self.subpath,
            "outcome": self.outcome.value,
            "duration": round(self.duration, 3),
            "message": self.message,
        }
