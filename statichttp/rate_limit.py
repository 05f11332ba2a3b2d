"""In-memory per-client rate limiter."""
from __future__ import annotations

import logging
import time
from collections import OrderedDict, deque
from threading import Lock
from typing import Callable, Deque

LOGGER = logging.getLogger(__name__)


class RateLimiter:
    """Tracks admitted requests per client IP within a sliding window.

    Only admitted requests are recorded, so a rejected request never pushes
    the client further back. At most ``max_clients`` identities are tracked;
    the least recently seen one is dropped when a new identity arrives.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        *,
        max_clients: int = 10_000,
        lock_timeout: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window = window_seconds
        self.max_clients = max_clients
        self.lock_timeout = lock_timeout
        self._clock = clock
        self._requests: OrderedDict[str, Deque[float]] = OrderedDict()
        self._lock = Lock()

    def allow(self, client_ip: str) -> bool:
        if not self._lock.acquire(timeout=self.lock_timeout):
            # Fail open.
            LOGGER.error("rate limiter state unavailable, admitting request", extra={"client_ip": client_ip})
            return True
        try:
            now = self._clock()
            q = self._requests.get(client_ip)
            if q is None:
                q = self._requests[client_ip] = deque()
                self._evict()
            else:
                self._requests.move_to_end(client_ip)
            while q and q[0] <= now - self.window:
                q.popleft()
            if len(q) >= self.limit:
                return False
            q.append(now)
            return True
        finally:
            self._lock.release()

    @property
    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._requests)

    def _evict(self) -> None:
        while len(self._requests) > self.max_clients:
            client_ip, _ = self._requests.popitem(last=False)
            LOGGER.debug("evicted rate window", extra={"client_ip": client_ip})
