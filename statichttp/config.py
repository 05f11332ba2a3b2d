"""Server settings and environment loading utilities."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_PREFIX = "STATICHTTP_"


def _load_dotenv() -> None:
    env_path = Path(".env")
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


_load_dotenv()


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _positive_number(name: str, default: str, kind: type = int) -> int | float:
    raw = _env(name, default)
    try:
        value = kind(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}") from exc
    if not math.isfinite(value) or value <= 0:
        raise RuntimeError(f"{ENV_PREFIX}{name} must be a positive finite number, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    """Runtime configuration derived from environment variables."""

    host: str = "0.0.0.0"
    port: int = 8000
    max_concurrent: int = 4
    rate_limit_requests: int = 100
    rate_limit_window_seconds: float = 60
    rate_limit_max_clients: int = 10_000
    static_root: str = "public_html"
    index_document: str = "index.html"
    not_found_page: str = "server_assets/404.html"
    request_log_path: str = "server.log"
    visitor_count_path: str = "/visitor-count"
    read_buffer_bytes: int = 4096
    socket_timeout_seconds: float = 10.0
    lock_timeout_seconds: float = 1.0

    @property
    def listen_address(self) -> tuple[str, int]:
        return (self.host, self.port)

    @classmethod
    def from_env(cls) -> "Settings":
        port = int(_positive_number("PORT", "8000"))
        if port > 65535:
            raise RuntimeError(f"{ENV_PREFIX}PORT out of range: {port}")

        return cls(
            host=_env("HOST", "0.0.0.0"),
            port=port,
            max_concurrent=int(_positive_number("MAX_CONCURRENT", "4")),
            rate_limit_requests=int(_positive_number("RATE_LIMIT_REQUESTS", "100")),
            rate_limit_window_seconds=_positive_number("RATE_LIMIT_WINDOW_SECONDS", "60", float),
            rate_limit_max_clients=int(_positive_number("RATE_LIMIT_MAX_CLIENTS", "10000")),
            static_root=_env("STATIC_ROOT", "public_html").rstrip("/"),
            index_document=_env("INDEX_DOCUMENT", "index.html"),
            not_found_page=_env("NOT_FOUND_PAGE", "server_assets/404.html"),
            request_log_path=_env("REQUEST_LOG", "server.log"),
            visitor_count_path=_env("VISITOR_COUNT_PATH", "/visitor-count"),
            read_buffer_bytes=int(_positive_number("READ_BUFFER_BYTES", "4096")),
            socket_timeout_seconds=_positive_number("SOCKET_TIMEOUT_SECONDS", "10", float),
            lock_timeout_seconds=_positive_number("LOCK_TIMEOUT_SECONDS", "1", float),
        )


@lru_cache()
def get_settings() -> Settings:
    """Return cached server settings."""

    return Settings.from_env()
