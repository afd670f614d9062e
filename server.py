"""Development server entry point and connection lifecycle."""

from __future__ import annotations

import argparse
import json
import logging
import socket
import time
from pathlib import Path

from config import (
    API_PREFIX,
    DEV_HOT_RELOAD,
    HOST,
    KEEPALIVE_TIMEOUT_SECS,
    LOG_FORMAT,
    MAX_KEEPALIVE_REQUESTS,
    NOT_FOUND_PAGE,
    NOT_FOUND_STATUS,
    PERSIST_STATE,
    PORT,
    RELOAD_EVENTS_URL,
    REQUEST_QUEUE_SIZE,
    SOCKET_TIMEOUT_SECS,
    STATE_FILE,
    STATIC_DIR,
    WORKER_COUNT,
)
from dispatcher import Dispatcher
from handlers.api_handlers import build_controller
from hot_reload import HotReloadChannel
from metrics import MetricsRegistry
from request import HTTPRequest, HTTPRequestParseError
from response import HTTPResponse
from router import Router
from socket_handler import (
    HeaderTooLargeError,
    HTTPReadError,
    MalformedRequestError,
    PayloadTooLargeError,
    SocketTimeoutError,
    read_http_request_message,
    write_http_response_message,
)
from static_files import StaticAssetResolver
from thread_pool import ThreadPool

logger = logging.getLogger(__name__)

READ_ERROR_RESPONSES: dict[type[HTTPReadError], tuple[int, str]] = {
    PayloadTooLargeError: (413, "Payload Too Large"),
    HeaderTooLargeError: (431, "Request Header Fields Too Large"),
    SocketTimeoutError: (408, "Request Timeout"),
    MalformedRequestError: (400, "Bad Request"),
}


class HTTPServer:
    def __init__(
        self,
        host: str = HOST,
        port: int = PORT,
        router: Router | None = None,
        worker_count: int = WORKER_COUNT,
        request_queue_size: int = REQUEST_QUEUE_SIZE,
        *,
        root: str | Path | None = None,
        static_dir: str = STATIC_DIR,
        dev_hot_reload: bool = DEV_HOT_RELOAD,
        reload_events_url: str = RELOAD_EVENTS_URL,
        api_prefix: str | None = API_PREFIX,
        not_found_page: str | Path = NOT_FOUND_PAGE,
        not_found_status: int = NOT_FOUND_STATUS,
        keepalive_timeout_secs: int = KEEPALIVE_TIMEOUT_SECS,
        log_format: str = LOG_FORMAT,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.worker_count = worker_count
        self.request_queue_size = request_queue_size
        self.keepalive_timeout_secs = keepalive_timeout_secs
        self.log_format = log_format
        self.metrics = metrics or MetricsRegistry()

        self.router = router if router is not None else Router(metrics=self.metrics)
        self.hot_reload = HotReloadChannel(dev_hot_reload, events_url=reload_events_url)
        self.static_resolver = StaticAssetResolver(
            root,
            static_dir,
            hot_reload=self.hot_reload,
            api_prefix=api_prefix,
            not_found_page=not_found_page,
            not_found_status=not_found_status,
            metrics=self.metrics,
        )
        self.dispatcher = Dispatcher(self.router, self.static_resolver, metrics=self.metrics)

        self._server_socket: socket.socket | None = None
        self._pool: ThreadPool | None = None
        self._running = False

    def start(self) -> None:
        """Listen and hand accepted connections to the worker pool until stopped."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server_socket:
            self._server_socket = server_socket
            server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server_socket.bind((self.host, self.port))
            server_socket.listen(128)
            server_socket.settimeout(0.2)
            self.port = server_socket.getsockname()[1]
            self._pool = ThreadPool(
                worker_count=self.worker_count,
                queue_size=self.request_queue_size,
                handler=self._handle_client,
            )
            self._pool.start()

            logger.info("Server running at http://%s:%s", self.host, self.port)
            if self.hot_reload.enabled:
                logger.info("Hot reload worker at /%s", self.hot_reload.script_name)

            self._running = True
            try:
                while self._running:
                    try:
                        client_socket, address = server_socket.accept()
                    except socket.timeout:
                        continue
                    except OSError:
                        break

                    if self._pool is None or not self._pool.submit(client_socket, address):
                        self._send_queue_full_response(client_socket)
            finally:
                if self._pool is not None:
                    self._pool.shutdown()
                    self._pool = None

    def stop(self) -> None:
        self._running = False
        if self._server_socket is not None:
            self._server_socket.close()
            self._server_socket = None
        if self._pool is not None:
            self._pool.shutdown()
            self._pool = None
        self.router.state.close()

    def _send_queue_full_response(self, client_socket: socket.socket) -> None:
        with client_socket:
            started_at = time.perf_counter()
            response = HTTPResponse.text(503, "Service Unavailable")
            response.should_close = True
            try:
                bytes_sent = write_http_response_message(client_socket, response)
            except OSError:
                return
            self._record_and_log(("-", 0), "-", "-", response, bytes_sent, started_at)

    def _handle_client(self, client_socket: socket.socket, address: tuple[str, int]) -> None:
        with client_socket:
            self.metrics.connection_opened()
            client_socket.settimeout(min(SOCKET_TIMEOUT_SECS, self.keepalive_timeout_secs))
            carry = b""
            try:
                for served in range(MAX_KEEPALIVE_REQUESTS):
                    started_at = time.perf_counter()
                    try:
                        raw_request, carry = read_http_request_message(
                            client_socket,
                            carry,
                            idle_timeout_closes=served > 0,
                        )
                    except HTTPReadError as exc:
                        self.metrics.record_read_error(exc.__class__.__name__)
                        status_code, body = READ_ERROR_RESPONSES.get(
                            type(exc), (400, "Bad Request")
                        )
                        response = HTTPResponse.text(status_code, body)
                        self._reply(client_socket, address, response, started_at)
                        return
                    except OSError:
                        return

                    if not raw_request:
                        return

                    try:
                        request = HTTPRequest.from_bytes(raw_request)
                    except HTTPRequestParseError as exc:
                        self.metrics.record_read_error(exc.__class__.__name__)
                        response = HTTPResponse.text(exc.status_code, str(exc))
                        self._reply(client_socket, address, response, started_at)
                        return

                    response = self.dispatcher.handle(request)
                    if not request.keep_alive:
                        response.should_close = True
                    if not self._reply(client_socket, address, response, started_at, request):
                        return
                    if response.should_close:
                        return
            except Exception:
                logger.exception("Unhandled error while serving %s", address[0])
            finally:
                self.metrics.connection_closed()

    def _reply(
        self,
        client_socket: socket.socket,
        address: tuple[str, int],
        response: HTTPResponse,
        started_at: float,
        request: HTTPRequest | None = None,
    ) -> bool:
        """Write ``response``; a reply to an unparseable request always closes."""
        method, path = "-", "-"
        if request is None:
            response.should_close = True
        else:
            method, path = request.method, request.url
        head_only = request is not None and request.method == "HEAD"
        try:
            bytes_sent = write_http_response_message(
                client_socket, response, head_only=head_only
            )
        except OSError:
            return False
        self._record_and_log(address, method, path, response, bytes_sent, started_at)
        return True

    def _record_and_log(
        self,
        address: tuple[str, int],
        method: str,
        path: str,
        response: HTTPResponse,
        bytes_sent: int,
        started_at: float,
    ) -> None:
        duration_ms = (time.perf_counter() - started_at) * 1000
        self.metrics.record_request(
            status_code=response.status_code,
            duration_ms=duration_ms,
            bytes_sent=bytes_sent,
        )
        event = {
            "client": address[0],
            "method": method,
            "path": path,
            "status": response.status_code,
            "bytes_out": bytes_sent,
            "latency_ms": round(duration_ms, 3),
        }
        if self.log_format == "json":
            logger.info(json.dumps(event, sort_keys=True))
            return

        logger.info(
            "client=%s method=%s path=%s status=%s bytes_out=%s duration_ms=%.2f",
            event["client"],
            event["method"],
            event["path"],
            event["status"],
            event["bytes_out"],
            duration_ms,
        )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the local development server")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--root", default=None, help="directory holding the static folder")
    parser.add_argument("--static-dir", default=STATIC_DIR)
    parser.add_argument("--state-file", default=STATE_FILE)
    parser.add_argument(
        "--no-persist",
        dest="persist_state",
        action="store_false",
        default=PERSIST_STATE,
    )
    parser.add_argument("--hot-reload", action="store_true", default=DEV_HOT_RELOAD)
    parser.add_argument("--reload-events-url", default=RELOAD_EVENTS_URL)
    parser.add_argument("--api-prefix", default=API_PREFIX)
    parser.add_argument("--workers", type=int, default=WORKER_COUNT)
    parser.add_argument("--log-format", choices=["plain", "json"], default=LOG_FORMAT)
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())
    metrics = MetricsRegistry()
    server = HTTPServer(
        host=args.host,
        port=args.port,
        router=build_controller(
            persist_state=args.persist_state,
            state_file=args.state_file,
            metrics=metrics,
        ),
        worker_count=args.workers,
        root=args.root,
        static_dir=args.static_dir,
        dev_hot_reload=args.hot_reload,
        reload_events_url=args.reload_events_url,
        api_prefix=args.api_prefix or None,
        log_format=args.log_format,
        metrics=metrics,
    )
    try:
        server.start()
    except KeyboardInterrupt:
        server.stop()


if __name__ == "__main__":
    main()
