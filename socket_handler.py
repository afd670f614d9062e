"""Low-level socket read/write utilities."""

from __future__ import annotations

import socket

from config import (
    BUFFER_SIZE,
    MAX_BODY_BYTES,
    MAX_HEADER_BYTES,
    MAX_REQUEST_BYTES,
    READ_CHUNK_SIZE,
)
from response import HTTPResponse


class HTTPReadError(Exception):
    """Raised when a client request cannot be safely read from the socket."""


class MalformedRequestError(HTTPReadError):
    """Raised when socket bytes do not form a complete HTTP request."""


class HeaderTooLargeError(HTTPReadError):
    """Raised when HTTP headers exceed configured maximum size."""


class PayloadTooLargeError(HTTPReadError):
    """Raised when request body exceeds configured maximum size."""


class SocketTimeoutError(HTTPReadError):
    """Raised when a client times out while sending request bytes."""


def _header_value(header_bytes: bytes, wanted: str) -> str | None:
    for line in header_bytes.decode("iso-8859-1").split("\r\n")[1:]:
        if not line:
            continue
        name, separator, value = line.partition(":")
        if not separator:
            raise MalformedRequestError("Malformed header while reading request")
        if name.strip().lower() == wanted:
            return value.strip()
    return None


def _chunked_body_length(encoded_body: bytes) -> int | None:
    """Return the encoded length of a complete chunked body, or None if partial."""
    position = 0
    decoded_size = 0
    while True:
        line_end = encoded_body.find(b"\r\n", position)
        if line_end == -1:
            return None
        size_token = encoded_body[position:line_end].split(b";", 1)[0].strip()
        try:
            chunk_size = int(size_token, 16)
        except ValueError as exc:
            raise MalformedRequestError("Malformed chunk size") from exc
        position = line_end + 2

        if chunk_size == 0:
            terminator = encoded_body.find(b"\r\n\r\n", position - 2)
            return None if terminator == -1 else terminator + 4

        decoded_size += chunk_size
        if decoded_size > MAX_BODY_BYTES:
            raise PayloadTooLargeError("Decoded chunked body exceeded MAX_BODY_BYTES")
        if len(encoded_body) < position + chunk_size + 2:
            return None
        position += chunk_size + 2


def extract_http_request_message(buffer: bytes) -> tuple[bytes, bytes] | None:
    """Split one complete HTTP request off the front of ``buffer``."""
    if len(buffer) > MAX_REQUEST_BYTES:
        raise PayloadTooLargeError("Request exceeded MAX_REQUEST_BYTES")

    header_end = buffer.find(b"\r\n\r\n")
    if header_end == -1:
        if len(buffer) > MAX_HEADER_BYTES:
            raise HeaderTooLargeError("Headers exceeded MAX_HEADER_BYTES")
        return None
    if header_end + 4 > MAX_HEADER_BYTES:
        raise HeaderTooLargeError("Headers exceeded MAX_HEADER_BYTES")

    header_bytes = buffer[:header_end]
    body_start = header_end + 4
    transfer_encoding = (_header_value(header_bytes, "transfer-encoding") or "").lower()
    if "chunked" in transfer_encoding:
        body_length = _chunked_body_length(buffer[body_start:])
        if body_length is None:
            return None
    else:
        raw_length = _header_value(header_bytes, "content-length") or "0"
        try:
            body_length = int(raw_length)
        except ValueError as exc:
            raise MalformedRequestError("Invalid Content-Length header") from exc
        if body_length < 0:
            raise MalformedRequestError("Negative Content-Length header")
        if body_length > MAX_BODY_BYTES:
            raise PayloadTooLargeError("Body exceeded MAX_BODY_BYTES")
        if len(buffer) < body_start + body_length:
            return None

    request_end = body_start + body_length
    return buffer[:request_end], buffer[request_end:]


def read_http_request_message(
    client_socket: socket.socket,
    initial_buffer: bytes = b"",
    *,
    idle_timeout_closes: bool = False,
) -> tuple[bytes, bytes]:
    """Read one HTTP/1.1 request and return (request_bytes, leftover_bytes).

    With ``idle_timeout_closes`` a timeout before any byte of the next request
    arrives is treated like the client closing the connection.
    """
    buffer = bytearray(initial_buffer)

    while True:
        extracted = extract_http_request_message(bytes(buffer))
        if extracted is not None:
            return extracted

        try:
            chunk = client_socket.recv(max(BUFFER_SIZE, READ_CHUNK_SIZE))
        except socket.timeout as exc:
            if idle_timeout_closes and not buffer:
                return b"", b""
            raise SocketTimeoutError("Timed out waiting for request bytes") from exc

        if not chunk:
            if not buffer:
                return b"", b""
            raise MalformedRequestError("Connection closed before request completed")

        buffer.extend(chunk)


def write_http_response_message(
    client_socket: socket.socket,
    response: HTTPResponse,
    *,
    head_only: bool = False,
) -> int:
    """Write an HTTPResponse and return the number of bytes sent.

    ``head_only`` sends the status line and headers, keeping the
    ``Content-Length`` of the full body, as a HEAD reply requires.
    """
    payload = response.head_bytes() if head_only else response.to_bytes()
    client_socket.sendall(payload)
    return len(payload)
