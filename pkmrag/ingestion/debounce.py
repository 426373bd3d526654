"""Per-note debounced re-embedding."""

import threading
from typing import Callable

from loguru import logger


class DebouncedReindexer:
    """Runs a callback for a key once no new trigger arrived for ``delay`` seconds.

    Triggering a key that already has a pending timer cancels that timer and
    starts a new one. Errors raised by the callback are logged and dropped,
    since nobody is waiting for the result.
    """

    def __init__(self, callback: Callable[[str], object], delay: float) -> None:
        self.callback = callback
        self.delay = delay
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def trigger(self, key: str) -> None:
        with self._lock:
            existing = self._timers.get(key)
            if existing is not None:
                existing.cancel()
            timer = threading.Timer(self.delay, self._fire, args=(key,))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def pending(self) -> set[str]:
        with self._lock:
            return set(self._timers)

    def cancel(self, key: str) -> None:
        with self._lock:
            timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def _fire(self, key: str) -> None:
        with self._lock:
            if self._timers.get(key) is not threading.current_thread():
                # Replaced or cancelled after this timer already started running
                return
            del self._timers[key]
        try:
            self.callback(key)
        except Exception as e:
            logger.warning(f"Automatic reindex of {key} failed: {e}")
