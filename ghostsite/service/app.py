"""FastAPI application exposing metrics, manual rebuilds and dev live reload."""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Any, List, Optional, Set, Tuple

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from .. import __version__
from ..logging import get_logger
from ..metrics import CONTENT_TYPE
from ..models import BuildOutcome, BuildRecord
from ..orchestrator import Orchestrator
from .reload import RELOAD_SCRIPT, ReloadBroadcaster

ALL_SITES = "*"


class BuildSummary(BaseModel):
    site: str
    subpath: str
    outcome: str
    duration: float
    message: Optional[str] = None


class RebuildResponse(BaseModel):
    status: str
    builds: List[BuildSummary] = []
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    active_builds: int


class RebuildGuard:
    """Tracks which rebuild scopes are currently running."""

    def __init__(self) -> None:
        self._active: Set[str] = set()
        self._lock = threading.Lock()

    def try_acquire(self, scope: str) -> bool:
        with self._lock:
            if scope in self._active:
                return False
            self._active.add(scope)
            return True

    def release(self, scope: str) -> None:
        with self._lock:
            self._active.discard(scope)

    def is_running(self, scope: str) -> bool:
        with self._lock:
            return scope in self._active


def create_app(
    orchestrator: Orchestrator,
    *,
    broadcaster: ReloadBroadcaster | None = None,
    dev: bool = False,
    static_dir: Path | None = None,
) -> FastAPI:
    """Create the FastAPI application for ``start`` and ``dev`` modes."""

    app = FastAPI(title="ghostsite", version=__version__)
    lifecycle = orchestrator.lifecycle
    guard = RebuildGuard()
    logger = get_logger("service")
    app.state.orchestrator = orchestrator
    app.state.rebuild_guard = guard

    if broadcaster is not None:
        app.state.broadcaster = broadcaster
        orchestrator.add_listener(lambda _record: broadcaster.notify())

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        status = "draining" if lifecycle.is_shutting_down() else "ok"
        return HealthResponse(status=status, active_builds=lifecycle.active_builds)

    @app.get("/metrics")
    async def metrics() -> PlainTextResponse:
        return PlainTextResponse(orchestrator.metrics.serialize(), media_type=CONTENT_TYPE)

    @app.post("/rebuild", response_model=RebuildResponse)
    async def rebuild(site: Optional[str] = None) -> Any:
        if lifecycle.is_shutting_down():
            return JSONResponse(status_code=503, content={"status": "shutting_down"})

        target = None
        scope = ALL_SITES
        if site:
            target = orchestrator.find_site(site)
            if target is None:
                return JSONResponse(
                    status_code=404,
                    content={"status": "error", "error": f"Unknown site '{site}'"},
                )
            scope = target.subpath

        if not guard.try_acquire(scope):
            return JSONResponse(status_code=409, content={"status": "already_running"})

        def _run_rebuild() -> List[BuildRecord]:
            if target is not None:
                return [orchestrator.build_site(target, dev=dev)]
            return orchestrator.build_all(dev=dev)

        logger.info("Rebuild triggered via HTTP (%s)", scope)
        try:
            loop = asyncio.get_running_loop()
            records = await loop.run_in_executor(None, _run_rebuild)
        except Exception as exc:
            logger.error("Rebuild failed: %s", exc)
            return JSONResponse(status_code=500, content={"status": "error", "error": str(exc)})
        finally:
            guard.release(scope)

        if records and all(record.outcome is BuildOutcome.SKIPPED for record in records):
            return JSONResponse(status_code=503, content={"status": "shutting_down"})

        status, error = _summarise(records)
        payload = RebuildResponse(
            status=status,
            builds=[BuildSummary(**record.to_dict()) for record in records],
            error=error,
        )
        if error is not None:
            return JSONResponse(status_code=500, content=payload.model_dump())
        return payload

    if dev and broadcaster is not None:

        @app.get("/_dev/events")
        async def events() -> StreamingResponse:
            listener = broadcaster.connect(asyncio.get_running_loop())
            return StreamingResponse(
                broadcaster.stream(listener),
                media_type="text/event-stream",
                headers={
                    "Cache-Control": "no-cache",
                    "Access-Control-Allow-Origin": "*",
                },
            )

        @app.get("/_dev/reload.js")
        @app.get("/{prefix:path}/_dev/reload.js")
        async def reload_script(prefix: str = "") -> Response:
            return Response(RELOAD_SCRIPT, media_type="application/javascript")

    if static_dir is not None:
        app.mount(
            "/",
            StaticFiles(directory=str(static_dir), html=True, check_dir=False),
            name="site",
        )

    return app


def _summarise(records: List[BuildRecord]) -> Tuple[str, Optional[str]]:
    failed = [record for record in records if not record.ok]
    if not failed:
        return "ok", None
    details = "; ".join(f"{record.site}: {record.message or record.outcome.value}" for record in failed)
    return "error", details


class ServiceThread:
    """Runs uvicorn on a background thread so the main thread keeps signal handling."""

    def __init__(self, app: FastAPI, *, host: str = "0.0.0.0", port: int = 9091) -> None:
        config = uvicorn.Config(app, host=host, port=port, log_level="warning", log_config=None)
        self.server = uvicorn.Server(config)
        self.host = host
        self.port = port
        self._thread = threading.Thread(target=self.server.run, name="http", daemon=True)
        self.logger = get_logger("service")

    def start(self) -> None:
        self._thread.start()
        self.logger.info("HTTP server listening on %s:%d", self.host, self.port)

    def stop(self, timeout: float | None = 10.0) -> None:
        self.logger.info("Stopping HTTP server")
        self.server.should_exit = True
        if self._thread.is_alive():
            self._thread.join(timeout)


__all__ = [
    "BuildSummary",
    "HealthResponse",
    "RebuildGuard",
    "RebuildResponse",
    "ServiceThread",
    "create_app",
]
