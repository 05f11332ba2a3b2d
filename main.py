"""Entry point for the static file server."""
from __future__ import annotations

import logging
import sys

from statichttp.config import Settings, get_settings
from statichttp.counter import VisitorCounter
from statichttp.exchange import RequestExchange
from statichttp.logging_config import configure_logging
from statichttp.rate_limit import RateLimiter
from statichttp.request_log import RequestLog
from statichttp.server import ConnectionDispatcher

LOGGER = logging.getLogger(__name__)


def create_exchange(settings: Settings) -> RequestExchange:
    """Wire the shared state and collaborators behind one exchange."""

    rate_limiter = RateLimiter(
        settings.rate_limit_requests,
        settings.rate_limit_window_seconds,
        max_clients=settings.rate_limit_max_clients,
        lock_timeout=settings.lock_timeout_seconds,
    )
    counter = VisitorCounter(lock_timeout=settings.lock_timeout_seconds)
    return RequestExchange(settings, rate_limiter, counter, RequestLog(settings.request_log_path))


def create_dispatcher(settings: Settings) -> ConnectionDispatcher:
    exchange = create_exchange(settings)
    return ConnectionDispatcher(
        settings.host,
        settings.port,
        exchange.handle_connection,
        max_concurrent=settings.max_concurrent,
        socket_timeout=settings.socket_timeout_seconds,
    )


def main() -> int:
    configure_logging()
    try:
        settings = get_settings()
    except RuntimeError as exc:
        LOGGER.error("invalid configuration", extra={"detail": str(exc)})
        return 2

    dispatcher = create_dispatcher(settings)
    try:
        dispatcher.run()
    except OSError:
        LOGGER.exception("failed to bind %s:%s", *settings.listen_address)
        return 1
    except KeyboardInterrupt:
        LOGGER.info("shutting down")
        dispatcher.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
