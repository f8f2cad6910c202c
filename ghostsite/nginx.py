"""Render an nginx ConfigMap that serves each hostnamed site from its subpath."""

from __future__ import annotations

from typing import Iterable

import yaml

from .models import SiteConfig

_SERVER_BLOCK = """
    server {{
        listen {port};
        server_name {hostname};

        root {root};
        index index.html;

        location = /{subpath} {{
            return 302 /{subpath}/;
        }}

        location /{subpath}/ {{
            try_files $uri $uri/ $uri/index.html =404;
        }}

        location / {{
            return 404;
        }}
    }}"""

_DEFAULT_SERVER = """
    server {{
        listen {port} default_server;
        return 404;
    }}"""

_NGINX_CONF = """pid /var/run/nginx.pid;

events {{
    worker_connections 1024;
}}

http {{
    include       /etc/nginx/mime.types;
    default_type  application/octet-stream;

    sendfile on;
    tcp_nopush on;
    gzip on;
    gzip_types text/plain text/css application/json application/javascript text/xml image/svg+xml;
{servers}
{default_server}
}}
"""


class _LiteralDumper(yaml.SafeDumper):
    pass


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    style = "|" if "\n" in value else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", value, style=style)


_LiteralDumper.add_representer(str, _represent_str)


def render_nginx_conf(
    sites: Iterable[SiteConfig], *, port: int = 8080, root: str = "/usr/share/nginx/html"
) -> str:
    blocks = [
        _SERVER_BLOCK.format(port=port, hostname=site.hostname, root=root, subpath=site.subpath)
        for site in sites
        if site.hostname
    ]
    return _NGINX_CONF.format(
        servers="\n".join(blocks), default_server=_DEFAULT_SERVER.format(port=port)
    )


def render_config_map(
    sites: Iterable[SiteConfig],
    *,
    name: str = "ghostsite-nginx",
    namespace: str = "websites",
    port: int = 8080,
) -> str:
    """Return a Kubernetes ConfigMap manifest (YAML) holding ``nginx.conf``."""
    manifest = {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": namespace},
        "data": {"nginx.conf": render_nginx_conf(sites, port=port)},
    }
    return yaml.dump(manifest, Dumper=_LiteralDumper, sort_keys=False, width=1000)


__all__ = ["render_config_map", "render_nginx_conf"]
