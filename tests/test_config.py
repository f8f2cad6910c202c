"""Tests for ghostsite.config."""

from __future__ import annotations

import base64
from pathlib import Path

import pytest

from ghostsite.config import ConfigError, load_config, parse_config, parse_frequency
from ghostsite.models import GeneratorSettings

MINIMAL = """
sites:
  - title: "My Blog"
    subpath: /blog/
    ghostUrl: "https://cms.example.com/"
    ghostApiKey: "abc123"
"""


@pytest.mark.parametrize(
    ("value", "expected"),
    [("30s", 30.0), ("15m", 900.0), ("6h", 21600.0), ("1h", 3600.0)],
)
def test_parse_frequency_accepts_units(value: str, expected: float) -> None:
    assert parse_frequency(value) == expected


@pytest.mark.parametrize("value", ["5x", "h", "10", "1.5h", "-1m", "0s", "", None])
def test_parse_frequency_rejects_invalid_values(value) -> None:
    with pytest.raises(ConfigError):
        parse_frequency(value)


def test_parse_config_applies_defaults() -> None:
    config = parse_config(MINIMAL)

    (site,) = config.sites
    assert site.title == "My Blog"
    assert site.subpath == "blog"
    assert site.ghost_url == "https://cms.example.com"
    assert site.update_frequency == "1h"
    assert site.sort_order == "desc"
    assert site.tag is None
    assert config.output_dir == "./dist"
    assert config.images.enabled is True
    assert config.images.concurrency == 6
    assert config.images.timeout is None
    assert config.images.retries == 0
    assert config.generator == GeneratorSettings()


def test_parse_config_reads_every_field() -> None:
    config = parse_config(
        """
outputDir: public
workDir: /tmp/work
themeDir: theme-dark
images:
  enabled: false
  concurrency: 3
  timeout: 12.5
  retries: 2
generator:
  command: "eleventy --input={input} --output={output}"
sites:
  - title: News
    subpath: news
    ghostUrl: https://news.example.com
    ghostApiKey: key
    tag: featured
    sortOrder: asc
    updateFrequency: 15m
    hostname: news.example.com
    copyright: Example Ltd
"""
    )

    (site,) = config.sites
    assert site.tag == "featured"
    assert site.sort_order == "asc"
    assert site.update_frequency == "15m"
    assert site.hostname == "news.example.com"
    assert site.copyright == "Example Ltd"
    assert config.output_dir == "public"
    assert config.work_dir == "/tmp/work"
    assert config.theme_dir == "theme-dark"
    assert config.images.enabled is False
    assert config.images.concurrency == 3
    assert config.images.timeout == 12.5
    assert config.images.retries == 2
    assert config.generator.command == ("eleventy", "--input={input}", "--output={output}")


def test_unknown_sort_order_falls_back_to_desc() -> None:
    config = parse_config(MINIMAL.replace('ghostApiKey: "abc123"', 'ghostApiKey: "abc123"\n    sortOrder: oldest'))

    assert config.sites[0].sort_order == "desc"


def test_invalid_frequency_names_the_site() -> None:
    text = MINIMAL + '    updateFrequency: "5x"\n'

    with pytest.raises(ConfigError) as excinfo:
        parse_config(text)

    assert "My Blog" in str(excinfo.value)
    assert "5x" in str(excinfo.value)


@pytest.mark.parametrize("missing", ["title", "subpath", "ghostUrl", "ghostApiKey"])
def test_missing_required_field_is_reported(missing: str) -> None:
    fields = {
        "title": "Blog",
        "subpath": "blog",
        "ghostUrl": "https://cms.example.com",
        "ghostApiKey": "key",
    }
    fields.pop(missing)
    body = "\n".join(f"    {key}: {value}" for key, value in fields.items())
    text = "sites:\n  -\n" + body + "\n"

    with pytest.raises(ConfigError, match=f"Site #1 missing '{missing}'"):
        parse_config(text)


def test_sites_must_be_a_list() -> None:
    with pytest.raises(ConfigError, match="'sites' array"):
        parse_config("outputDir: dist\n")


def test_duplicate_subpaths_are_rejected() -> None:
    text = MINIMAL + """  - title: "Other"
    subpath: blog
    ghostUrl: "https://other.example.com"
    ghostApiKey: "xyz"
"""
    with pytest.raises(ConfigError, match="share subpath 'blog'"):
        parse_config(text)


def test_invalid_image_concurrency_is_rejected() -> None:
    with pytest.raises(ConfigError, match="images.concurrency"):
        parse_config("images:\n  concurrency: 0\n" + MINIMAL)


def test_malformed_yaml_raises_config_error() -> None:
    with pytest.raises(ConfigError):
        parse_config("sites: [\n")


def test_load_config_reads_file(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(MINIMAL, encoding="utf-8")

    config = load_config(path, environ={})

    assert config.sites[0].subpath == "blog"


def test_load_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "absent.yaml", environ={})


def test_environment_overrides_file(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(MINIMAL, encoding="utf-8")
    encoded = base64.b64encode(MINIMAL.replace("/blog/", "journal").encode("utf-8")).decode("ascii")

    config = load_config(path, environ={"GHOSTSITE_CONFIG": encoded})

    assert config.sites[0].subpath == "journal"


def test_environment_value_must_be_base64() -> None:
    with pytest.raises(ConfigError, match="base64"):
        load_config(None, environ={"GHOSTSITE_CONFIG": "not base64!"})
