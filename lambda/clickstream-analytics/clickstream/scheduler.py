"""
Periodic refresh of an analytics computation.

Dashboards poll on a fixed cadence rather than receiving pushed updates. The
Poller owns that cadence: ``tick()`` runs the task when it is due according to
an injectable clock, and ``start()``/``stop()`` drive ticks from a background
thread. A failed run keeps the previous result.
"""

import logging
import threading
import time
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INTERVAL_SECONDS = 30


class Poller(Generic[T]):
    def __init__(
        self,
        task: Callable[[], T],
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        name: str = "analytics-poller",
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._task = task
        self._interval = interval_seconds
        self._clock = clock
        self._name = name
        self._latest: Optional[T] = None
        self._last_run: Optional[float] = None
        self._failures = 0
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def latest(self) -> Optional[T]:
        """Result of the last successful run, or None before the first one."""
        return self._latest

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def is_due(self) -> bool:
        if self._last_run is None:
            return True
        return self._clock() - self._last_run >= self._interval

    def run_now(self) -> Optional[T]:
        """Run the task immediately, keeping the previous result on failure."""
        with self._lock:
            self._last_run = self._clock()
            try:
                self._latest = self._task()
            except Exception:
                self._failures += 1
                logger.exception(f"{self._name}: refresh failed, keeping previous result")
            return self._latest

    def tick(self) -> Optional[T]:
        with self._lock:
            if self.is_due():
                return self.run_now()
            return self._latest

    def start(self) -> None:
        if self.running:
            return
        # Each thread gets its own stop event so a loop that outlived stop() stays stopped
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(target=self._loop, args=(stop_event,), name=self._name, daemon=True)
        self._thread.start()
        logger.info(f"{self._name}: started (interval={self._interval}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the background thread and wait for it. Safe to call repeatedly."""
        thread = self._thread
        self._stop_event.set()
        if thread is None:
            return
        if thread is not threading.current_thread():
            thread.join(timeout)
        if thread.is_alive():
            logger.warning(f"{self._name}: still finishing current run after stop")
        self._thread = None
        logger.info(f"{self._name}: stopped")

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self.run_now()
            stop_event.wait(self._interval)
