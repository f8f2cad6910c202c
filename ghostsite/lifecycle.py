"""Build/shutdown lifecycle coordination.

A single :class:`LifecycleCoordinator` is created at process entry and handed
to every component that starts builds. Shutdown happens in two ordered
phases: stop accepting new builds, then wait for in-flight builds to drain
before running teardown hooks.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from .logging import get_logger

ShutdownHook = Callable[[], object]


def _terminate_process(status: int) -> None:  # pragma: no cover - exits the interpreter
    logging.shutdown()
    os._exit(status)


class LifecycleCoordinator:
    """Tracks in-flight builds and runs the graceful shutdown sequence once."""

    def __init__(self, exit_func: Optional[Callable[[int], object]] = None) -> None:
        self._condition = threading.Condition()
        self._shutdown_requested = False
        self._active_builds = 0
        self._hooks: List[ShutdownHook] = []
        self._terminated = threading.Event()
        self._exit = exit_func or _terminate_process
        self.logger = get_logger("lifecycle")

    @property
    def active_builds(self) -> int:
        with self._condition:
            return self._active_builds

    def is_shutting_down(self) -> bool:
        return self._shutdown_requested

    def build_start(self) -> None:
        with self._condition:
            self._active_builds += 1

    def try_build_start(self) -> bool:
        """Count a new build unless shutdown has begun.

        The check and the increment happen under one lock, so a build admitted
        here is always drained before the shutdown hooks run.
        """
        with self._condition:
            if self._shutdown_requested:
                return False
            self._active_builds += 1
            return True

    def build_end(self) -> None:
        with self._condition:
            if self._active_builds <= 0:
                self.logger.warning("build_end called without a matching build_start")
                return
            self._active_builds -= 1
            if self._shutdown_requested and self._active_builds == 0:
                self._condition.notify_all()

    @contextmanager
    def track_build(self) -> Iterator[bool]:
        """Count the enclosed block as an in-flight build if one may still start.

        Yields False, without counting anything, once shutdown has begun.
        """
        admitted = self.try_build_start()
        try:
            yield admitted
        finally:
            if admitted:
                self.build_end()

    def on_shutdown(self, hook: ShutdownHook) -> None:
        with self._condition:
            self._hooks.append(hook)

    def shutdown(self, signal_name: str = "shutdown") -> None:
        """Drain active builds, run teardown hooks in order, then exit with status 0.

        A second call while the sequence is running (or after it finished) is a
        no-op. There is deliberately no drain timeout.
        """
        with self._condition:
            if self._shutdown_requested:
                return
            self._shutdown_requested = True
            self.logger.info(
                "Shutdown requested (%s), waiting for %d active build(s) to finish",
                signal_name,
                self._active_builds,
            )
            while self._active_builds > 0:
                self._condition.wait()
            hooks = list(self._hooks)

        self.logger.info("Running %d shutdown hook(s)", len(hooks))
        for hook in hooks:
            try:
                hook()
            except Exception as exc:
                self.logger.error("Shutdown hook %r failed: %s", hook, exc)

        self.logger.info("Shutdown complete")
        self._terminated.set()
        self._exit(0)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the shutdown sequence has completed."""
        return self._terminated.wait(timeout)

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM into the shutdown sequence.

        The sequence runs on its own thread: the main thread may itself be
        holding a build that has to finish before the drain completes.
        """

        def _handler(signum: int, _frame: object) -> None:
            name = signal.Signals(signum).name
            if self._shutdown_requested:
                self.logger.debug("Ignoring repeated %s, shutdown already in progress", name)
                return
            threading.Thread(
                target=self.shutdown, args=(name,), name="shutdown", daemon=False
            ).start()

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)


__all__ = ["LifecycleCoordinator", "ShutdownHook"]
