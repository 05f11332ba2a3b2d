"""Minimal HTTP/1.1 request parsing and response framing."""
from __future__ import annotations

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Dict, Optional

ALLOW_ORIGIN = {"Access-Control-Allow-Origin": "*"}
CORS_HEADERS = {
    **ALLOW_ORIGIN,
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@dataclass(frozen=True)
class ParsedRequest:
    method: str
    path: str


def parse_request(raw: bytes) -> Optional[ParsedRequest]:
    """Parse the request line, returning ``None`` when it is malformed.

    Only the first line is interpreted. Header lines are part of ``raw`` but
    ignored, so a head truncated by the read buffer still parses as long as
    the request line itself arrived.
    """

    text = raw.decode("utf-8", errors="replace")
    lines = text.splitlines()
    if not lines:
        return None
    parts = lines[0].split()
    if len(parts) < 2:
        return None
    return ParsedRequest(method=parts[0], path=parts[1])


@dataclass
class HttpResponse:
    """A complete response; ``Content-Length`` is always derived from ``body``."""

    status: int
    content_type: Optional[str] = None
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def reason(self) -> str:
        return HTTPStatus(self.status).phrase

    def to_bytes(self) -> bytes:
        lines = [f"HTTP/1.1 {int(self.status)} {self.reason}"]
        # 204 responses must not carry a body or a Content-Length.
        if self.status != HTTPStatus.NO_CONTENT:
            lines.append(f"Content-Length: {len(self.body)}")
        if self.content_type:
            lines.append(f"Content-Type: {self.content_type}")
        lines.extend(f"{name}: {value}" for name, value in self.headers.items())
        head = "\r\n".join(lines) + "\r\n\r\n"
        body = b"" if self.status == HTTPStatus.NO_CONTENT else self.body
        return head.encode("latin-1") + body
