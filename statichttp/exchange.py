"""Request routing: one request in, one response out."""
from __future__ import annotations

import logging
import socket
from http import HTTPStatus
from typing import Callable

from statichttp.config import Settings
from statichttp.counter import CounterUnavailableError, VisitorCounter
from statichttp.files import FileRetrievalError, read_file
from statichttp.pages import error_response
from statichttp.protocol import ALLOW_ORIGIN, CORS_HEADERS, HttpResponse, parse_request
from statichttp.rate_limit import RateLimiter
from statichttp.request_log import RequestLog
from statichttp.utils import content_type_for, has_parent_reference, resolve_static_path

LOGGER = logging.getLogger(__name__)

RATE_LIMITED_BODY = b"Rate limit exceeded"
NOT_FOUND_BODY = b"404 Not Found"
DRAIN_LIMIT_BYTES = 64 * 1024
DRAIN_TIMEOUT_SECONDS = 1.0


class RequestExchange:
    """Classifies a raw request and produces exactly one response for it."""

    def __init__(
        self,
        settings: Settings,
        rate_limiter: RateLimiter,
        counter: VisitorCounter,
        request_log: RequestLog,
        reader: Callable[[str], bytes] = read_file,
    ) -> None:
        self._settings = settings
        self._rate_limiter = rate_limiter
        self._counter = counter
        self._request_log = request_log
        self._read = reader

    def handle_connection(self, conn: socket.socket, client_ip: str) -> None:
        """Read one request from ``conn`` and write its response back."""

        try:
            raw = conn.recv(self._settings.read_buffer_bytes)
        except OSError as exc:
            LOGGER.warning("failed to read request", extra={"client_ip": client_ip, "detail": str(exc)})
            return
        if not raw:
            LOGGER.debug("client closed before sending a request", extra={"client_ip": client_ip})
            return

        response = self.respond(raw, client_ip)
        try:
            conn.sendall(response.to_bytes())
        except OSError as exc:
            LOGGER.warning(
                "failed to write response",
                extra={"client_ip": client_ip, "status": response.status, "detail": str(exc)},
            )
            return
        self._finish(conn, client_ip)

    def _finish(self, conn: socket.socket, client_ip: str) -> None:
        """Half-close and drain unread input so closing does not reset the peer."""

        drained = 0
        try:
            conn.shutdown(socket.SHUT_WR)
            conn.settimeout(DRAIN_TIMEOUT_SECONDS)
            while drained < DRAIN_LIMIT_BYTES:
                chunk = conn.recv(self._settings.read_buffer_bytes)
                if not chunk:
                    break
                drained += len(chunk)
        except OSError as exc:
            LOGGER.debug("stopped draining connection", extra={"client_ip": client_ip, "detail": str(exc)})

    def respond(self, raw: bytes, client_ip: str) -> HttpResponse:
        request = parse_request(raw)
        if request is None:
            LOGGER.info("malformed request line", extra={"client_ip": client_ip, "status": 400})
            return error_response(HTTPStatus.BAD_REQUEST)

        method, path = request.method, request.path
        LOGGER.info(
            "%s %s", method, path, extra={"client_ip": client_ip, "method": method, "path": path}
        )

        if not self._rate_limiter.allow(client_ip):
            LOGGER.warning("rate limit exceeded", extra={"client_ip": client_ip, "status": 429})
            return HttpResponse(
                status=HTTPStatus.TOO_MANY_REQUESTS,
                content_type="text/plain",
                body=RATE_LIMITED_BODY,
                headers=dict(ALLOW_ORIGIN),
            )

        # Any method reaches the counter.
        if path == self._settings.visitor_count_path:
            return self._visitor_count(client_ip)

        if method == "OPTIONS":
            return HttpResponse(status=HTTPStatus.NO_CONTENT, headers=dict(CORS_HEADERS))

        if method != "GET":
            return error_response(HTTPStatus.METHOD_NOT_ALLOWED)

        return self._static_file(method, path, client_ip)

    def _visitor_count(self, client_ip: str) -> HttpResponse:
        try:
            count = self._counter.increment_and_get()
        except CounterUnavailableError:
            LOGGER.exception("visitor counter unavailable", extra={"client_ip": client_ip, "status": 500})
            return error_response(HTTPStatus.INTERNAL_SERVER_ERROR)
        LOGGER.debug("visitor count incremented", extra={"detail": count})
        return HttpResponse(
            status=HTTPStatus.OK,
            content_type="text/plain",
            body=str(count).encode("ascii"),
            headers=dict(CORS_HEADERS),
        )

    def _static_file(self, method: str, path: str, client_ip: str) -> HttpResponse:
        settings = self._settings
        resolved = resolve_static_path(path, settings.static_root, settings.index_document)
        if resolved is None:
            LOGGER.info("unresolvable path", extra={"client_ip": client_ip, "path": path, "status": 404})
            return self._not_found()
        if has_parent_reference(resolved):
            LOGGER.warning(
                "blocked path with parent reference",
                extra={"client_ip": client_ip, "resolved_path": resolved, "status": 404},
            )
            return self._not_found()

        try:
            body = self._read(resolved)
        except FileRetrievalError as exc:
            LOGGER.info(
                "not found",
                extra={"resolved_path": resolved, "status": 404, "detail": str(exc)},
            )
            return self._not_found()

        LOGGER.info("served", extra={"resolved_path": resolved, "status": 200})
        self._request_log.log_request(client_ip, f"{method} {path} 200")
        return HttpResponse(
            status=HTTPStatus.OK,
            content_type=content_type_for(resolved),
            body=body,
            headers=dict(CORS_HEADERS),
        )

    def _not_found(self) -> HttpResponse:
        try:
            body, content_type = self._read(self._settings.not_found_page), "text/html"
        except FileRetrievalError:
            body, content_type = NOT_FOUND_BODY, "text/plain"
        return HttpResponse(
            status=HTTPStatus.NOT_FOUND,
            content_type=content_type,
            body=body,
            headers=dict(CORS_HEADERS),
        )
