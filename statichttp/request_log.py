"""Append-only request log file."""
from __future__ import annotations

import logging
from datetime import UTC, datetime
from threading import Lock

LOGGER = logging.getLogger(__name__)


class RequestLog:
    """Appends one line per served request; failures never reach the client."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = Lock()

    def log_request(self, client_ip: str, summary: str) -> None:
        timestamp = datetime.now(UTC).isoformat()
        entry = f"[{timestamp}] {client_ip} - {summary}\n"
        try:
            with self._lock, open(self.path, "a", encoding="utf-8") as handle:
                handle.write(entry)
        except OSError as exc:
            LOGGER.warning("failed to write request log", extra={"detail": str(exc), "client_ip": client_ip})
