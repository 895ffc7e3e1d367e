from __future__ import annotations

import threading
from typing import Callable

from gre_insight.logging_config import get_logger

logger = get_logger(__name__)


class DebouncedTask:
    """Trailing-edge debounce: ``fn`` runs once ``delay`` seconds after the last ``schedule()``."""

    def __init__(self, delay: float, fn: Callable[[], None], *, name: str = "debounced") -> None:
        self.delay = delay
        self.fn = fn
        self.name = name
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            timer = threading.Timer(self.delay, self._fire, args=(generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def flush(self) -> bool:
        """Run a pending call now. Returns False when nothing was armed."""
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            self._generation += 1
        self._run()
        return True

    def _fire(self, generation: int) -> None:
        with self._lock:
            # a cancel/re-arm raced with this timer thread
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
        self._run()

    def _run(self) -> None:
        try:
            self.fn()
        except Exception:
            logger.exception("%s task failed", self.name)
