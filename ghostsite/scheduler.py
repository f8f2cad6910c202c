"""Per-site refresh scheduling.

Every site gets its own supervised thread that sleeps until the next deadline
and then rebuilds exactly that site. A slow or failing site never delays or
cancels another site's timer.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from .config import parse_frequency
from .lifecycle import LifecycleCoordinator
from .logging import get_logger
from .models import SiteConfig

RebuildCallback = Callable[[SiteConfig], object]


class Clock(Protocol):
    def now(self) -> float:
        ...

    def wait_until(self, stop: threading.Event, deadline: float) -> bool:
        """Block until ``deadline`` or until ``stop`` is set; return True when stopped."""
        ...


class MonotonicClock:
    """Wall-clock independent time source backed by :func:`time.monotonic`."""

    def now(self) -> float:
        return time.monotonic()

    def wait_until(self, stop: threading.Event, deadline: float) -> bool:
        while not stop.is_set():
            remaining = deadline - self.now()
            if remaining <= 0:
                return False
            if stop.wait(remaining):
                return True
        return True


class SiteTimer:
    """Repeating trigger for a single site, running on its own thread."""

    def __init__(
        self,
        site: SiteConfig,
        callback: RebuildCallback,
        *,
        clock: Clock,
        lifecycle: LifecycleCoordinator | None = None,
    ) -> None:
        self.site = site
        self.interval = parse_frequency(site.update_frequency)
        self.fires = 0
        self.skipped = 0
        self._callback = callback
        self._clock = clock
        self._lifecycle = lifecycle
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.logger = get_logger("scheduler")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError(f"Timer for {self.site.subpath} already started")
        self._thread = threading.Thread(
            target=self._run, name=f"timer-{self.site.subpath}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop the timer thread; an in-flight rebuild is allowed to finish."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        deadline = self._clock.now() + self.interval
        while not self._clock.wait_until(self._stop, deadline):
            if self._lifecycle is not None and self._lifecycle.is_shutting_down():
                self.logger.debug("Not refreshing %s, shutdown in progress", self.site.title)
                return
            self._fire()
            deadline = self._next_deadline(deadline)

    def _fire(self) -> None:
        self.fires += 1
        self.logger.info("Scheduled refresh for %s", self.site.title)
        try:
            self._callback(self.site)
        except Exception as exc:
            self.logger.error("Scheduled refresh for %s failed: %s", self.site.title, exc)

    def _next_deadline(self, previous: float) -> float:
        deadline = previous + self.interval
        now = self._clock.now()
        if deadline <= now:
            # The rebuild outlasted one or more ticks; drop them instead of
            # firing back-to-back for the same site.
            missed = int((now - deadline) // self.interval) + 1
            self.skipped += missed
            deadline += missed * self.interval
            self.logger.warning(
                "Refresh for %s overran its interval, skipped %d tick(s)",
                self.site.title,
                missed,
            )
        return deadline


class SiteScheduler:
    """Owns the timer set: one :class:`SiteTimer` per configured site."""

    def __init__(
        self,
        rebuild: RebuildCallback,
        *,
        lifecycle: LifecycleCoordinator | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._rebuild = rebuild
        self._lifecycle = lifecycle
        self._clock = clock or MonotonicClock()
        self._timers: List[SiteTimer] = []
        self._lock = threading.Lock()
        self.logger = get_logger("scheduler")
        if lifecycle is not None:
            # Timers installed by an early reload must still be torn down.
            lifecycle.on_shutdown(self.stop)

    @property
    def timers(self) -> List[SiteTimer]:
        with self._lock:
            return list(self._timers)

    def start(self, sites: Sequence[SiteConfig]) -> None:
        """Install one timer per site, replacing any existing timer set."""
        self.reload(sites)

    def reload(self, sites: Iterable[SiteConfig]) -> None:
        """Cancel every current timer, then install timers for ``sites``."""
        sites = list(sites)
        # Validate before tearing anything down so a bad reload keeps the old set.
        for site in sites:
            parse_frequency(site.update_frequency)

        with self._lock:
            old, self._timers = self._timers, []
            for timer in old:
                timer.stop()
            if old:
                self.logger.info("Cancelled %d site timer(s)", len(old))

            for site in sites:
                timer = SiteTimer(
                    site, self._rebuild, clock=self._clock, lifecycle=self._lifecycle
                )
                self.logger.info(
                    "Scheduling %s every %s (%.0fs)",
                    site.title,
                    site.update_frequency,
                    timer.interval,
                )
                timer.start()
                self._timers.append(timer)

    def stop(self) -> None:
        with self._lock:
            timers, self._timers = self._timers, []
        self.logger.info("Clearing %d site timer(s)", len(timers))
        for timer in timers:
            timer.stop()


__all__ = ["Clock", "MonotonicClock", "SiteScheduler", "SiteTimer"]
