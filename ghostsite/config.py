"""Configuration loading for ghostsite (config.yaml)."""

from __future__ import annotations

import base64
import binascii
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .models import AppConfig, GeneratorSettings, ImageSettings, SiteConfig

ENV_CONFIG_KEY = "GHOSTSITE_CONFIG"
DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_FREQUENCY = "1h"

_FREQUENCY_PATTERN = re.compile(r"^(\d+)([smh])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600}


class ConfigError(RuntimeError):
    """Raised when the configuration cannot be read or is invalid."""


def parse_frequency(value: str) -> float:
    """Convert a compact duration such as ``30s``, ``15m`` or ``6h`` into seconds."""
    match = _FREQUENCY_PATTERN.match(str(value).strip()) if value is not None else None
    if match is None:
        raise ConfigError(
            f"Invalid update frequency {value!r}: expected digits followed by s, m or h (e.g. '30m')"
        )
    amount = int(match.group(1))
    if amount <= 0:
        raise ConfigError(f"Invalid update frequency {value!r}: interval must be positive")
    return float(amount * _UNIT_SECONDS[match.group(2)])


def load_config(
    config_path: Path | str | None = None, *, environ: Mapping[str, str] | None = None
) -> AppConfig:
    """Load configuration from ``GHOSTSITE_CONFIG`` (base64 YAML) or from disk."""
    env = os.environ if environ is None else environ
    encoded = env.get(ENV_CONFIG_KEY)
    if encoded:
        try:
            text = base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise ConfigError(f"{ENV_CONFIG_KEY} is not valid base64-encoded UTF-8") from exc
        source = ENV_CONFIG_KEY
    else:
        path = Path(config_path or DEFAULT_CONFIG_PATH).expanduser().resolve()
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        text = path.read_text(encoding="utf-8")
        source = path.name

    return parse_config(text, source=source)


def parse_config(text: str, *, source: str = DEFAULT_CONFIG_PATH) -> AppConfig:
    """Parse YAML text into an :class:`AppConfig`, validating every site."""
    try:
        data = yaml.safe_load(text) if text.strip() else None
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {source}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{source} must contain a mapping at the root")

    raw_sites = data.get("sites")
    if not isinstance(raw_sites, list):
        raise ConfigError("Config must have a 'sites' array.")

    sites = [_parse_site(entry, index) for index, entry in enumerate(raw_sites, start=1)]
    _ensure_unique_subpaths(sites)

    images_data = _as_dict(data.get("images"))
    images = ImageSettings(
        enabled=_as_bool(images_data.get("enabled"), default=True),
        concurrency=_positive_int(images_data.get("concurrency"), "images.concurrency", 6),
        timeout=_as_float(images_data.get("timeout")),
        retries=_non_negative_int(images_data.get("retries"), "images.retries", 0),
    )

    generator_data = _as_dict(data.get("generator"))
    command = _as_str_list(generator_data.get("command"))
    generator = GeneratorSettings(command=tuple(command)) if command else GeneratorSettings()

    return AppConfig(
        output_dir=_as_str(data.get("outputDir")) or "./dist",
        work_dir=_as_str(data.get("workDir")) or "./.ghostsite-work",
        theme_dir=_as_str(data.get("themeDir")) or "./theme",
        sites=tuple(sites),
        images=images,
        generator=generator,
    )


def _parse_site(entry: Any, index: int) -> SiteConfig:
    if not isinstance(entry, dict):
        raise ConfigError(f"Site #{index} must be a mapping")

    required: Dict[str, str] = {}
    for key in ("title", "subpath", "ghostUrl", "ghostApiKey"):
        value = _as_str(entry.get(key))
        if not value:
            raise ConfigError(f"Site #{index} missing '{key}'")
        required[key] = value

    subpath = required["subpath"].strip("/")
    if not subpath:
        raise ConfigError(f"Site #{index} has an empty 'subpath'")

    frequency = _as_str(entry.get("updateFrequency")) or DEFAULT_FREQUENCY
    try:
        parse_frequency(frequency)
    except ConfigError as exc:
        raise ConfigError(f"Site #{index} ({required['title']}): {exc}") from exc

    return SiteConfig(
        title=required["title"],
        subpath=subpath,
        ghost_url=required["ghostUrl"].rstrip("/"),
        ghost_api_key=required["ghostApiKey"],
        tag=_as_str(entry.get("tag")),
        sort_order="asc" if entry.get("sortOrder") == "asc" else "desc",
        update_frequency=frequency,
        hostname=_as_str(entry.get("hostname")),
        copyright=_as_str(entry.get("copyright")),
    )


def _ensure_unique_subpaths(sites: Sequence[SiteConfig]) -> None:
    seen: Dict[str, str] = {}
    for site in sites:
        if site.subpath in seen:
            raise ConfigError(
                f"Sites '{seen[site.subpath]}' and '{site.title}' share subpath '{site.subpath}'"
            )
        seen[site.subpath] = site.title


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _positive_int(value: Any, name: str, default: int) -> int:
    if value is None:
        return default
    parsed = _as_int(value)
    if parsed is None or parsed < 1:
        raise ConfigError(f"'{name}' must be a positive integer")
    return parsed


def _non_negative_int(value: Any, name: str, default: int) -> int:
    if value is None:
        return default
    parsed = _as_int(value)
    if parsed is None or parsed < 0:
        raise ConfigError(f"'{name}' must be zero or a positive integer")
    return parsed


def _as_bool(value: Any, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return default


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "ConfigError",
    "DEFAULT_FREQUENCY",
    "ENV_CONFIG_KEY",
    "load_config",
    "parse_config",
    "parse_frequency",
]
