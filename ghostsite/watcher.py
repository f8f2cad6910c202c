"""Polling file watcher used by dev mode."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Optional, Tuple

from .logging import get_logger

Fingerprint = Tuple[Tuple[str, int, int], ...]


def fingerprint(path: Path) -> Fingerprint:
    """Return (relative path, mtime_ns, size) for every file under ``path``."""
    if not path.exists():
        return ()
    if path.is_file():
        stat = path.stat()
        return ((path.name, stat.st_mtime_ns, stat.st_size),)
    entries = []
    for candidate in sorted(path.rglob("*")):
        if candidate.is_file():
            stat = candidate.stat()
            entries.append((str(candidate.relative_to(path)), stat.st_mtime_ns, stat.st_size))
    return tuple(entries)


class PathWatcher:
    """Calls ``on_change`` whenever the files under ``path`` change."""

    def __init__(
        self,
        path: Path,
        on_change: Callable[[Path], object],
        *,
        interval: float = 1.0,
    ) -> None:
        self.path = path
        self.interval = interval
        self._on_change = on_change
        self._snapshot = fingerprint(path)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.logger = get_logger("watcher")

    def check(self) -> bool:
        """Compare against the last snapshot and fire the callback on change."""
        current = fingerprint(self.path)
        if current == self._snapshot:
            return False
        self._snapshot = current
        self.logger.info("Change detected in %s", self.path)
        try:
            self._on_change(self.path)
        except Exception as exc:
            self.logger.error("Change handler for %s failed: %s", self.path, exc)
        return True

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run, name=f"watch-{self.path.name}", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.check()
            except OSError as exc:
                self.logger.warning("Unable to scan %s: %s", self.path, exc)


__all__ = ["PathWatcher", "fingerprint"]
