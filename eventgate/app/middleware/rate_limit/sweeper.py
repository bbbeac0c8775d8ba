"""Background sweep thread for limiter cleanup."""

import threading
from typing import Callable, Optional

from eventgate.app.core.logging import get_logger

logger = get_logger(__name__)


class PeriodicSweeper:
    """Runs a cleanup callable every ``interval`` seconds on a daemon thread.

    Usage:
        sweeper = PeriodicSweeper(60.0, limiter.cleanup, name="sliding-window-cleanup")
        sweeper.start()
        ...
        sweeper.stop()  # returns only after the thread has exited
    """

    def __init__(self, interval: float, callback: Callable[[], object], name: str = "limiter-cleanup"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._interval = interval
        self._callback = callback
        self._name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        logger.debug(f"Started {self._name} every {self._interval}s")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            logger.debug(f"Stopped {self._name}")

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._callback()
            except Exception:
                # A failed sweep must not kill the thread; the next one retries
                logger.exception(f"{self._name} sweep failed")
