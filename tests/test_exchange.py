from __future__ import annotations

import socket
from unittest import mock

import pytest

from statichttp.config import Settings
from statichttp.counter import CounterUnavailableError, VisitorCounter
from statichttp.exchange import RequestExchange
from statichttp.rate_limit import RateLimiter
from statichttp.request_log import RequestLog

CLIENT = "127.0.0.1"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(256))
CUSTOM_404 = b"<html><body>custom missing page</body></html>"


@pytest.fixture()
def site(tmp_path):
    root = tmp_path / "public_html"
    (root / "css").mkdir(parents=True)
    (root / "index.html").write_bytes(b"<html><body>home</body></html>")
    (root / "css" / "site.css").write_bytes(b"body { color: red; }")
    (root / "logo.png").write_bytes(PNG_BYTES)
    assets = tmp_path / "server_assets"
    assets.mkdir()
    (assets / "404.html").write_bytes(CUSTOM_404)
    (tmp_path / "secret.txt").write_bytes(b"top secret")
    return Settings(
        static_root=str(root),
        not_found_page=str(assets / "404.html"),
        request_log_path=str(tmp_path / "server.log"),
    )


def make_exchange(settings: Settings, *, limit: int = 100, counter=None, request_log=None) -> RequestExchange:
    return RequestExchange(
        settings,
        RateLimiter(limit, 60),
        counter or VisitorCounter(),
        request_log or RequestLog(settings.request_log_path),
    )


def request(exchange: RequestExchange, line: str):
    return exchange.respond(f"{line}\r\nHost: localhost\r\n\r\n".encode("latin-1"), CLIENT)


def test_root_serves_index_document(site):
    response = request(make_exchange(site), "GET / HTTP/1.1")

    assert response.status == 200
    assert response.content_type == "text/html"
    assert response.body == b"<html><body>home</body></html>"
    assert response.headers == {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }


def test_static_file_round_trip(site):
    wire = request(make_exchange(site), "GET /logo.png HTTP/1.1").to_bytes()

    head, body = wire.split(b"\r\n\r\n", 1)
    assert head.startswith(b"HTTP/1.1 200 OK")
    assert f"Content-Length: {len(PNG_BYTES)}".encode() in head
    assert b"Content-Type: image/png" in head
    assert body == PNG_BYTES


def test_nested_file_content_type(site):
    response = request(make_exchange(site), "GET /css/site.css HTTP/1.1")

    assert response.status == 200
    assert response.content_type == "text/css"


def test_single_token_request_is_bad_request(site):
    response = request(make_exchange(site), "GET")

    assert response.status == 400
    assert response.body == b"<html><body><h1>400 Bad Request</h1></body></html>"
    assert response.headers == {"Access-Control-Allow-Origin": "*"}


def test_options_returns_preflight_headers(site):
    response = request(make_exchange(site), "OPTIONS /anything/at/all HTTP/1.1")

    assert response.status == 204
    assert response.to_bytes().endswith(b"\r\n\r\n")
    assert set(response.headers) == {
        "Access-Control-Allow-Origin",
        "Access-Control-Allow-Methods",
        "Access-Control-Allow-Headers",
    }


@pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "HEAD"])
def test_non_get_static_request_is_not_allowed(site, method):
    response = request(make_exchange(site), f"{method} /index.html HTTP/1.1")

    assert response.status == 405
    assert b"405 Method Not Allowed" in response.body
    assert response.headers == {"Access-Control-Allow-Origin": "*"}


def test_visitor_count_ignores_method(site):
    counter = VisitorCounter()
    exchange = make_exchange(site, counter=counter)

    first = request(exchange, "POST /visitor-count HTTP/1.1")
    second = request(exchange, "GET /visitor-count HTTP/1.1")
    third = request(exchange, "OPTIONS /visitor-count HTTP/1.1")

    assert [r.status for r in (first, second, third)] == [200, 200, 200]
    assert [r.body for r in (first, second, third)] == [b"1", b"2", b"3"]
    assert first.content_type == "text/plain"
    assert counter.value == 3


def test_counter_fault_is_internal_server_error(site):
    counter = mock.Mock(spec=VisitorCounter)
    counter.increment_and_get.side_effect = CounterUnavailableError("locked")

    response = request(make_exchange(site, counter=counter), "GET /visitor-count HTTP/1.1")

    assert response.status == 500
    assert response.headers == {"Access-Control-Allow-Origin": "*"}


@pytest.mark.parametrize(
    "path",
    ["/../secret.txt", "/css/../../secret.txt", "/%2e%2e/secret.txt", "/..%2fsecret.txt"],
)
def test_traversal_is_indistinguishable_from_missing(site, path):
    exchange = make_exchange(site)

    traversal = request(exchange, f"GET {path} HTTP/1.1")
    missing = request(exchange, "GET /../does-not-exist.txt HTTP/1.1")

    assert traversal.status == 404
    assert traversal.to_bytes() == missing.to_bytes()
    assert b"top secret" not in traversal.body


def test_missing_file_uses_custom_page(site):
    response = request(make_exchange(site), "GET /nope.html HTTP/1.1")

    assert response.status == 404
    assert response.body == CUSTOM_404
    assert response.content_type == "text/html"
    assert response.headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS"


def test_missing_file_falls_back_when_custom_page_absent(site, tmp_path):
    (tmp_path / "server_assets" / "404.html").unlink()

    response = request(make_exchange(site), "GET /nope.html HTTP/1.1")

    assert response.status == 404
    assert response.body == b"404 Not Found"
    assert response.content_type == "text/plain"


def test_directory_and_unresolvable_paths_are_not_found(site):
    exchange = make_exchange(site)

    assert request(exchange, "GET /css HTTP/1.1").status == 404
    assert request(exchange, "GET * HTTP/1.1").status == 404


def test_rate_limit_applies_before_routing(site):
    counter = VisitorCounter()
    exchange = make_exchange(site, limit=2, counter=counter)
    assert request(exchange, "GET / HTTP/1.1").status == 200
    assert request(exchange, "GET /visitor-count HTTP/1.1").status == 200

    for line in ("GET / HTTP/1.1", "GET /visitor-count HTTP/1.1", "OPTIONS / HTTP/1.1"):
        response = request(exchange, line)
        assert response.status == 429
        assert response.body == b"Rate limit exceeded"
        assert response.content_type == "text/plain"
        assert response.headers == {"Access-Control-Allow-Origin": "*"}

    assert counter.value == 1


def test_malformed_requests_do_not_consume_rate_slots(site):
    exchange = make_exchange(site, limit=1)

    for _ in range(3):
        assert request(exchange, "GET").status == 400

    assert request(exchange, "GET / HTTP/1.1").status == 200


def test_successful_requests_are_logged(site):
    request(make_exchange(site), "GET /index.html HTTP/1.1")
    request(make_exchange(site), "GET /missing.html HTTP/1.1")

    with open(site.request_log_path, encoding="utf-8") as handle:
        lines = handle.read().splitlines()
    assert len(lines) == 1
    assert lines[0].endswith("127.0.0.1 - GET /index.html 200")


def test_request_log_failure_does_not_fail_request(site, tmp_path):
    broken_log = RequestLog(str(tmp_path))  # a directory cannot be opened for append

    response = request(make_exchange(site, request_log=broken_log), "GET / HTTP/1.1")

    assert response.status == 200


def test_handle_connection_writes_one_response(site):
    exchange = make_exchange(site)
    client, server = socket.socketpair()
    with client, server:
        client.sendall(b"GET /css/site.css HTTP/1.1\r\nHost: localhost\r\n\r\n")
        client.shutdown(socket.SHUT_WR)
        exchange.handle_connection(server, CLIENT)
        server.close()
        data = b""
        while chunk := client.recv(4096):
            data += chunk

    assert data.startswith(b"HTTP/1.1 200 OK\r\n")
    assert data.endswith(b"\r\n\r\nbody { color: red; }")


def test_handle_connection_drains_input_beyond_read_buffer(site):
    exchange = make_exchange(site)
    payload = b"POST /index.html HTTP/1.1\r\nHost: localhost\r\nContent-Length: 20000\r\n\r\n" + b"x" * 20000
    client, server = socket.socketpair()
    with client, server:
        client.sendall(payload)
        client.shutdown(socket.SHUT_WR)
        exchange.handle_connection(server, CLIENT)

        data = b""
        while chunk := client.recv(4096):
            data += chunk
        assert server.recv(4096) == b""

    assert data.startswith(b"HTTP/1.1 405 Method Not Allowed\r\n")
    assert data.endswith(b"</html>")


def test_handle_connection_ignores_empty_read(site):
    reader = mock.Mock()
    exchange = RequestExchange(site, RateLimiter(100, 60), VisitorCounter(), RequestLog(site.request_log_path), reader)
    client, server = socket.socketpair()
    with client, server:
        client.shutdown(socket.SHUT_WR)
        exchange.handle_connection(server, CLIENT)
        server.shutdown(socket.SHUT_WR)

        assert client.recv(4096) == b""
    reader.assert_not_called()
