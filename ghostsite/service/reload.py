"""Live-reload notifications pushed to connected browsers over server-sent events."""

from __future__ import annotations

import asyncio
import threading
from typing import AsyncIterator, List

from ..logging import get_logger

RELOAD_EVENT = "data: reload\n\n"

RELOAD_SCRIPT = """
(function() {
  const es = new EventSource("/_dev/events");
  es.onmessage = function() { location.reload(); };
  es.onerror = function() { setTimeout(() => location.reload(), 2000); };
})();
"""


class ListenerClosed(RuntimeError):
    """Raised when a message is sent to a listener whose stream has ended."""


class Listener:
    """One connected event-stream client bound to the event loop serving it."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._queue: "asyncio.Queue[str]" = asyncio.Queue()
        self.closed = False

    def send(self, message: str) -> None:
        if self.closed or self._loop.is_closed():
            raise ListenerClosed("listener stream has ended")
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, message)
        except RuntimeError as exc:
            raise ListenerClosed(str(exc)) from exc

    async def receive(self) -> str:
        return await self._queue.get()

    def close(self) -> None:
        self.closed = True


class ReloadBroadcaster:
    """Fans reload notices out to every listener; dead listeners are pruned on emit."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()
        self.logger = get_logger("service.reload")

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def connect(self, loop: asyncio.AbstractEventLoop | None = None) -> Listener:
        listener = Listener(loop or asyncio.get_running_loop())
        with self._lock:
            self._listeners.append(listener)
        return listener

    def notify(self, message: str = RELOAD_EVENT) -> int:
        """Send ``message`` to every listener and return how many received it."""
        with self._lock:
            listeners = list(self._listeners)
        delivered = 0
        dead: List[Listener] = []
        for listener in listeners:
            try:
                listener.send(message)
            except ListenerClosed:
                dead.append(listener)
            else:
                delivered += 1
        if dead:
            with self._lock:
                self._listeners = [item for item in self._listeners if item not in dead]
            self.logger.debug("Pruned %d disconnected reload listener(s)", len(dead))
        return delivered

    async def stream(self, listener: Listener) -> AsyncIterator[str]:
        """Yield event-stream frames for ``listener`` until the client goes away."""
        try:
            yield ": connected\n\n"
            while True:
                yield await listener.receive()
        finally:
            listener.close()


__all__ = [
    "Listener",
    "ListenerClosed",
    "RELOAD_EVENT",
    "RELOAD_SCRIPT",
    "ReloadBroadcaster",
]
