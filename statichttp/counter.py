"""Process-wide visitor counter."""
from __future__ import annotations

from threading import Lock


class CounterUnavailableError(RuntimeError):
    """Raised when the counter lock cannot be acquired in time."""


class VisitorCounter:
    """Thread-safe monotonically increasing counter, reset on restart."""

    def __init__(self, lock_timeout: float = 1.0) -> None:
        self.lock_timeout = lock_timeout
        self._value = 0
        self._lock = Lock()

    def increment_and_get(self) -> int:
        """Add one visit and return the new total."""

        if not self._lock.acquire(timeout=self.lock_timeout):
            raise CounterUnavailableError("visitor counter is locked")
        try:
            self._value += 1
            return self._value
        finally:
            self._lock.release()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value
