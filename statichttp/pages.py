"""HTML error pages rendered with Jinja2."""
from __future__ import annotations

from http import HTTPStatus

from jinja2 import Environment, PackageLoader, select_autoescape

from statichttp.protocol import ALLOW_ORIGIN, HttpResponse

templates = Environment(
    loader=PackageLoader("statichttp", "templates"),
    autoescape=select_autoescape(["html"]),
)


def error_response(status: int) -> HttpResponse:
    """Build an HTML error response carrying only the allow-origin header."""

    reason = HTTPStatus(status).phrase
    body = templates.get_template("error.html").render(status=int(status), reason=reason)
    return HttpResponse(
        status=status,
        content_type="text/html",
        body=body.encode("utf-8"),
        headers=dict(ALLOW_ORIGIN),
    )
