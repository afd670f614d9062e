"""Socket-level integration tests for the development server."""

from __future__ import annotations

import json
import socket
import threading
import time
from pathlib import Path

import pytest

from handlers.api_handlers import build_controller
from server import HTTPServer, _parse_args


def _start_server(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    **kwargs: object,
) -> tuple[HTTPServer, threading.Thread]:
    public = tmp_path / "public"
    public.mkdir()
    (public / "index.html").write_text(
        "<html><head></head><body>index</body></html>",
        encoding="utf-8",
    )
    (tmp_path / "404.html").write_text("not found page", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    router = build_controller(persist_state=True, state_file=tmp_path / "server.state.temp")
    server = HTTPServer(port=0, router=router, root=tmp_path, **kwargs)
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()

    deadline = time.time() + 3
    while server.port == 0 and time.time() < deadline:
        time.sleep(0.01)

    if server.port == 0:
        raise RuntimeError("Server did not bind to a port")

    return server, thread


def _stop_server(server: HTTPServer, thread: threading.Thread) -> None:
    server.stop()
    thread.join(timeout=2.0)


def _recv_all(client: socket.socket) -> bytes:
    chunks = []
    while True:
        chunk = client.recv(8192)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


def _request(server: HTTPServer, target: str, method: str = "GET") -> bytes:
    payload = (
        f"{method} {target} HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n"
    ).encode("ascii")
    with socket.create_connection((server.host, server.port), timeout=2.0) as client:
        client.sendall(payload)
        return _recv_all(client)


def test_api_counter_over_the_wire(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    server, thread = _start_server(tmp_path, monkeypatch)

    first = _request(server, "/api/first")
    second = _request(server, "/api/first")

    _stop_server(server, thread)

    assert first.startswith(b"HTTP/1.1 200 OK\r\n")
    assert first.endswith(b"was called 1 times")
    assert second.endswith(b"was called 2 times")
    saved = json.loads((tmp_path / "server.state.temp").read_text(encoding="utf-8"))
    assert saved == {"count": 2}


def test_static_fallbacks_over_the_wire(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    server, thread = _start_server(tmp_path, monkeypatch)

    index = _request(server, "/")
    missing_page = _request(server, "/nothing.html")
    missing_api = _request(server, "/api/missing")

    _stop_server(server, thread)

    assert index.startswith(b"HTTP/1.1 200 OK\r\n")
    assert b"Content-Type: text/html\r\n" in index
    assert missing_page.startswith(b"HTTP/1.1 200 OK\r\n")
    assert missing_page.endswith(b"not found page")
    assert missing_api.startswith(b"HTTP/1.1 400 Bad Request\r\n")
    assert missing_api.endswith(b"API call not found")


def test_hot_reload_worker_over_the_wire(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    server, thread = _start_server(tmp_path, monkeypatch, dev_hot_reload=True)

    page = _request(server, "/")
    worker = _request(server, f"/{server.hot_reload.script_name}")

    _stop_server(server, thread)

    assert server.hot_reload.script_name.encode() in page
    assert b"Content-Type: text/javascript\r\n" in worker
    assert b"EventSource" in worker


def test_keep_alive_serves_sequential_requests(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    server, thread = _start_server(tmp_path, monkeypatch)

    payload = b"GET /api/first HTTP/1.1\r\nHost: localhost\r\n\r\n"
    with socket.create_connection((server.host, server.port), timeout=2.0) as client:
        client.sendall(payload + payload.replace(b"\r\n\r\n", b"\r\nConnection: close\r\n\r\n"))
        raw = _recv_all(client)

    _stop_server(server, thread)

    assert raw.count(b"HTTP/1.1 200 OK") == 2
    assert raw.endswith(b"was called 2 times")


def _read_head(client: socket.socket) -> tuple[bytes, bytes]:
    buffer = b""
    while b"\r\n\r\n" not in buffer:
        chunk = client.recv(8192)
        if not chunk:
            break
        buffer += chunk
    head, _, rest = buffer.partition(b"\r\n\r\n")
    return head, rest


def test_head_sends_headers_only_on_keep_alive(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    server, thread = _start_server(tmp_path, monkeypatch)

    with socket.create_connection((server.host, server.port), timeout=2.0) as client:
        client.sendall(b"HEAD /index.html HTTP/1.1\r\nHost: localhost\r\n\r\n")
        head, rest = _read_head(client)
        client.sendall(
            b"GET /index.html HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n"
        )
        following = rest + _recv_all(client)

    _stop_server(server, thread)

    assert head.startswith(b"HTTP/1.1 200 OK\r\n")
    assert b"Content-Length: 44\r\n" in head
    assert following.startswith(b"HTTP/1.1 200 OK\r\n")
    assert following.endswith(b"<body>index</body></html>")


def test_idle_keep_alive_connection_closes_quietly(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    server, thread = _start_server(tmp_path, monkeypatch, keepalive_timeout_secs=1)

    with socket.create_connection((server.host, server.port), timeout=3.0) as client:
        client.sendall(b"HEAD / HTTP/1.1\r\nHost: localhost\r\n\r\n")
        head, rest = _read_head(client)
        after_idle = rest + _recv_all(client)

    _stop_server(server, thread)

    assert head.startswith(b"HTTP/1.1 200 OK\r\n")
    assert after_idle == b""
    assert server.metrics.snapshot()["total_requests"] == 1


def test_malformed_request_returns_400(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    server, thread = _start_server(tmp_path, monkeypatch)

    with socket.create_connection((server.host, server.port), timeout=2.0) as client:
        client.sendall(b"BROKEN\r\n\r\n")
        response = _recv_all(client)

    _stop_server(server, thread)

    assert response.startswith(b"HTTP/1.1 400 Bad Request")
    assert b"Connection: close\r\n" in response


def test_requests_are_counted(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    server, thread = _start_server(tmp_path, monkeypatch)

    _request(server, "/api/first")
    _request(server, "/")

    _stop_server(server, thread)

    snapshot = server.metrics.snapshot()
    assert snapshot["total_requests"] == 2
    assert snapshot["status_counts"] == {"200": 2}
    assert snapshot["requests_by_source"]["static"] == 1


def test_cli_defaults_match_config() -> None:
    args = _parse_args([])

    assert args.port == 4200
    assert args.static_dir == "public"
    assert args.state_file == "./server.state.temp"
    assert args.persist_state is True
    assert args.hot_reload is False

    args = _parse_args(["--no-persist", "--hot-reload", "--port", "8000"])
    assert args.persist_state is False
    assert args.hot_reload is True
    assert args.port == 8000
