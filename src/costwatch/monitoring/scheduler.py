"""Tick sources for the monitoring loop.

The engine only knows about a ``Ticker``: something that calls one
callback repeatedly until stopped. ``IntervalTicker`` does that on a
background thread; ``ManualTicker`` lets tests fire ticks by hand.

Public API (the "studs"):
    Ticker: Tick source interface
    IntervalTicker: Background thread ticking every ``interval`` seconds
    ManualTicker: Ticks only when ``tick()`` is called
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Ticker(ABC):
    """Drives a tick callback until stopped."""

    @abstractmethod
    def start(self, callback: Callable[[], None]) -> None:
        """Begin invoking ``callback`` on every tick."""

    @abstractmethod
    def stop(self) -> None:
        """Stop ticking. A tick already running is allowed to finish."""

    @property
    @abstractmethod
    def running(self) -> bool: ...


class IntervalTicker(Ticker):
    """Calls the callback every ``interval`` seconds on a daemon thread.

    The next wait starts only after the previous tick returns, so ticks
    never overlap. The first tick fires one interval after ``start()``.
    """

    def __init__(self, interval: float, join_timeout: float | None = 30) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self.join_timeout = join_timeout
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, callback: Callable[[], None]) -> None:
        if self.running:
            raise RuntimeError("Ticker is already running")

        # Each run owns its event, so a thread that outlived stop() stays stopped
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(callback, self._stop_event),
            name="costwatch-ticker",
            daemon=True,
        )
        self._thread.start()

    def _run(self, callback: Callable[[], None], stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            try:
                callback()
            except Exception:
                # The engine handles its own tick errors; this keeps the loop alive regardless
                logger.exception("Unhandled error in tick callback")

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        thread = self._thread
        if thread is None:
            return
        # stop() may be called from inside a tick (e.g. an event handler)
        if thread is not threading.current_thread():
            thread.join(self.join_timeout)
        self._thread = None


class ManualTicker(Ticker):
    """Ticker for tests: each ``tick()`` runs the callback synchronously."""

    def __init__(self) -> None:
        self._callback: Callable[[], None] | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._callback is not None

    def start(self, callback: Callable[[], None]) -> None:
        self._callback = callback

    def stop(self) -> None:
        self._callback = None

    def tick(self, count: int = 1) -> None:
        """Fire ``count`` ticks. Does nothing once stopped."""
        for _ in range(count):
            if self._callback is None:
                return
            self.ticks += 1
            self._callback()


__all__ = ["IntervalTicker", "ManualTicker", "Ticker"]
