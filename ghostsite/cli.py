"""CLI entrypoints for ghostsite commands."""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path

from .config import ConfigError, load_config
from .content.ghost import ContentError, GhostClient
from .lifecycle import LifecycleCoordinator
from .logging import configure_logging, get_logger
from .metrics import BuildMetrics
from .models import AppConfig
from .nginx import render_config_map
from .orchestrator import Orchestrator
from .scheduler import SiteScheduler
from .watcher import PathWatcher


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    # Subcommands suppress their default so a top-level -v is not reset to False.
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=argparse.SUPPRESS if suppress_default else False,
        help="Log at DEBUG level, including per-resource and per-tick detail.",
    )


def _add_config_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to the config file (GHOSTSITE_CONFIG overrides it).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ghostsite",
        description="Republish Ghost content as static sites on per-site schedules.",
    )
    _add_verbose_option(parser)
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    start_parser = subparsers.add_parser(
        "start",
        help="Build all sites, refresh them on schedule and serve /metrics and /rebuild.",
    )
    _add_verbose_option(start_parser, suppress_default=True)
    _add_config_option(start_parser)
    start_parser.add_argument(
        "-m", "--metrics-port", type=int, default=9091, help="Port for the metrics server."
    )
    start_parser.add_argument("--host", default="0.0.0.0", help="Interface to bind.")
    start_parser.add_argument(
        "--no-schedule",
        action="store_true",
        help="Only rebuild on POST /rebuild; do not start per-site timers.",
    )

    dev_parser = subparsers.add_parser(
        "dev",
        help="Serve built sites locally and rebuild on theme or config changes.",
    )
    _add_verbose_option(dev_parser, suppress_default=True)
    _add_config_option(dev_parser)
    dev_parser.add_argument("-p", "--port", type=int, default=3000, help="Dev server port.")
    dev_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")

    build_parser = subparsers.add_parser("build", help="Build sites once and exit.")
    _add_verbose_option(build_parser, suppress_default=True)
    _add_config_option(build_parser)
    build_parser.add_argument(
        "--site", default=None, help="Subpath of a single site to build (defaults to all)."
    )

    tags_parser = subparsers.add_parser("list-tags", help="List tags and post counts per site.")
    _add_verbose_option(tags_parser, suppress_default=True)
    _add_config_option(tags_parser)

    nginx_parser = subparsers.add_parser(
        "gen-nginx", help="Print an nginx ConfigMap for sites with a hostname."
    )
    _add_verbose_option(nginx_parser, suppress_default=True)
    _add_config_option(nginx_parser)
    nginx_parser.add_argument("--namespace", default="websites", help="ConfigMap namespace.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for ghostsite commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        parser.exit(1, f"ghostsite: {exc}\n")

    if args.command == "start":
        _run_start(config, args)
    elif args.command == "dev":
        _run_dev(config, args)
    elif args.command == "build":
        _run_build(config, args, parser)
    elif args.command == "list-tags":
        _run_list_tags(config, parser)
    elif args.command == "gen-nginx":
        print(render_config_map(config.sites, namespace=args.namespace), end="")
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run_start(config: AppConfig, args: argparse.Namespace) -> None:  # pragma: no cover - long-running
    from .service import ServiceThread, create_app

    logger = get_logger("cli")
    lifecycle = LifecycleCoordinator()
    lifecycle.install_signal_handlers()
    orchestrator = Orchestrator(config, lifecycle=lifecycle, metrics=BuildMetrics())

    service = ServiceThread(create_app(orchestrator), host=args.host, port=args.metrics_port)
    service.start()
    lifecycle.on_shutdown(service.stop)

    scheduler = None
    if not args.no_schedule:
        scheduler = SiteScheduler(orchestrator.build_site, lifecycle=lifecycle)
    _install_reload_handler(args.config, orchestrator, scheduler)

    orchestrator.build_all()
    if scheduler is not None and not lifecycle.is_shutting_down():
        scheduler.start(orchestrator.config.sites)
    logger.info("Initial build complete, waiting for triggers")
    lifecycle.wait()


def _run_dev(config: AppConfig, args: argparse.Namespace) -> None:  # pragma: no cover - long-running
    from .service import ReloadBroadcaster, ServiceThread, create_app

    logger = get_logger("cli")
    lifecycle = LifecycleCoordinator()
    lifecycle.install_signal_handlers()
    orchestrator = Orchestrator(config, lifecycle=lifecycle, metrics=BuildMetrics())
    broadcaster = ReloadBroadcaster()

    orchestrator.build_all(dev=True)

    app = create_app(
        orchestrator,
        broadcaster=broadcaster,
        dev=True,
        static_dir=Path(config.output_dir).resolve(),
    )
    service = ServiceThread(app, host=args.host, port=args.port)
    service.start()

    def _on_theme_change(_path: Path) -> None:
        orchestrator.build_all(dev=True)

    def _on_config_change(_path: Path) -> None:
        if _reload_config(args.config, orchestrator, None):
            orchestrator.build_all(dev=True)

    watchers = [
        PathWatcher(Path(orchestrator.config.theme_dir).resolve(), _on_theme_change),
        PathWatcher(Path(args.config).resolve(), _on_config_change),
    ]
    for watcher in watchers:
        watcher.start()
        lifecycle.on_shutdown(watcher.stop)
    lifecycle.on_shutdown(service.stop)

    for site in orchestrator.config.sites:
        logger.info("%s: http://localhost:%d/%s/", site.title, args.port, site.subpath)
    lifecycle.wait()


def _run_build(config: AppConfig, args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
    lifecycle = LifecycleCoordinator()
    orchestrator = Orchestrator(config, lifecycle=lifecycle)
    if args.site:
        site = orchestrator.find_site(args.site)
        if site is None:
            parser.exit(1, f"ghostsite: unknown site '{args.site}'\n")
        records = [orchestrator.build_site(site)]
    else:
        records = orchestrator.build_all()

    failed = [record for record in records if not record.ok]
    for record in records:
        print(f"{record.subpath}: {record.outcome.value} ({record.duration:.2f}s)")
    if failed:
        parser.exit(1, f"ghostsite: {len(failed)} of {len(records)} build(s) failed\n")


def _run_list_tags(config: AppConfig, parser: argparse.ArgumentParser) -> None:
    client = GhostClient()
    for site in config.sites:
        print(f"\n{site.title} ({site.ghost_url})")
        print("-" * 40)
        try:
            tags = client.fetch_tags(site)
        except ContentError as exc:
            parser.exit(1, f"ghostsite: {site.title}: {exc}\n")
        if not tags:
            print("  (no tags)")
            continue
        for tag in tags:
            count = "?" if tag.post_count is None else tag.post_count
            print(f"  {tag.name} [{tag.slug}] - {count} posts")


def _reload_config(
    config_path: str, orchestrator: Orchestrator, scheduler: SiteScheduler | None
) -> bool:
    logger = get_logger("cli")
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        logger.error("Invalid config, keeping the previous one: %s", exc)
        return False
    orchestrator.update_config(config)
    if scheduler is not None:
        scheduler.reload(config.sites)
    return True


def _install_reload_handler(
    config_path: str, orchestrator: Orchestrator, scheduler: SiteScheduler | None
) -> None:  # pragma: no cover - signal wiring
    if not hasattr(signal, "SIGHUP"):
        return

    def _handler(_signum: int, _frame: object) -> None:
        if orchestrator.lifecycle.is_shutting_down():
            return
        get_logger("cli").info("SIGHUP received, reloading configuration")
        threading.Thread(
            target=_reload_config,
            args=(config_path, orchestrator, scheduler),
            name="config-reload",
            daemon=True,
        ).start()

    signal.signal(signal.SIGHUP, _handler)


if __name__ == "__main__":
    main(sys.argv[1:])
