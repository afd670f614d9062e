"""HTTP request model and parser."""

from dataclasses import dataclass, field
from urllib.parse import parse_qs, parse_qsl, urlsplit

from config import MAX_BODY_BYTES, MAX_TARGET_LENGTH

ALLOWED_HTTP_VERSIONS = {"HTTP/1.1", "HTTP/1.0"}
KNOWN_METHODS = {
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "DELETE",
    "OPTIONS",
    "PATCH",
}


class HTTPRequestParseError(ValueError):
    """Request parse error carrying an HTTP status code."""

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class HTTPRequest:
    method: str
    path: str
    http_version: str = "HTTP/1.1"
    raw_target: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    query_params: dict[str, list[str]] = field(default_factory=dict)
    query_pairs: list[tuple[str, str]] = field(default_factory=list)
    keep_alive: bool = False
    path_params: dict[str, str] = field(default_factory=dict)

    @property
    def url(self) -> str:
        """Request target as sent by the client, query string included."""
        return self.raw_target or self.path

    @classmethod
    def for_target(cls, method: str, target: str, **kwargs: object) -> "HTTPRequest":
        """Build a request for a raw target such as ``/api/item/7?x=1``."""
        parsed_target = urlsplit(target)
        return cls(
            method=method.upper(),
            path=parsed_target.path or "/",
            raw_target=target,
            query_params=parse_qs(parsed_target.query, keep_blank_values=True),
            query_pairs=parse_qsl(parsed_target.query, keep_blank_values=True),
            **kwargs,
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "HTTPRequest":
        """Parse raw HTTP request bytes into a structured request object."""
        try:
            header_bytes, body = raw.split(b"\r\n\r\n", 1)
        except ValueError as exc:
            raise HTTPRequestParseError("Missing CRLF CRLF request separator") from exc

        lines = header_bytes.decode("iso-8859-1").split("\r\n")
        if not lines or not lines[0]:
            raise HTTPRequestParseError("Missing request line")

        request_line = lines[0].split(" ")
        if len(request_line) != 3 or not all(request_line):
            raise HTTPRequestParseError("Invalid request line")

        method, target, http_version = request_line
        method = method.upper()
        if method not in KNOWN_METHODS:
            raise HTTPRequestParseError("Method not implemented", status_code=501)
        if http_version not in ALLOWED_HTTP_VERSIONS:
            raise HTTPRequestParseError("Unsupported HTTP version", status_code=505)
        if len(target) > MAX_TARGET_LENGTH:
            raise HTTPRequestParseError("Request target too long", status_code=414)

        headers: dict[str, str] = {}
        for line in lines[1:]:
            if not line:
                continue
            name, separator, value = line.partition(":")
            if not separator or not name.strip():
                raise HTTPRequestParseError("Malformed header line")
            headers[name.strip().lower()] = value.strip()

        if http_version == "HTTP/1.1" and "host" not in headers:
            raise HTTPRequestParseError("Host header required for HTTP/1.1")

        transfer_encoding = headers.get("transfer-encoding", "").lower()
        if "chunked" in transfer_encoding:
            if "content-length" in headers:
                raise HTTPRequestParseError(
                    "Content-Length cannot be combined with chunked transfer"
                )
            body = _decode_chunked_body(body)
        elif "content-length" in headers:
            try:
                expected_length = int(headers["content-length"])
            except ValueError as exc:
                raise HTTPRequestParseError("Invalid Content-Length") from exc
            if expected_length < 0 or len(body) != expected_length:
                raise HTTPRequestParseError("Body length does not match Content-Length")

        if len(body) > MAX_BODY_BYTES:
            raise HTTPRequestParseError("Body exceeded MAX_BODY_BYTES", status_code=413)

        return cls.for_target(
            method,
            target,
            http_version=http_version,
            headers=headers,
            body=body,
            keep_alive=_is_keep_alive(http_version, headers.get("connection", "")),
        )


def _is_keep_alive(http_version: str, connection_header: str) -> bool:
    token = connection_header.lower()
    if http_version == "HTTP/1.1":
        return "close" not in token
    return "keep-alive" in token


def _decode_chunked_body(encoded_body: bytes) -> bytes:
    position = 0
    decoded = bytearray()

    while True:
        line_end = encoded_body.find(b"\r\n", position)
        if line_end == -1:
            raise HTTPRequestParseError("Incomplete chunk size line")

        size_token = encoded_body[position:line_end].split(b";", 1)[0].strip()
        try:
            chunk_size = int(size_token, 16)
        except ValueError as exc:
            raise HTTPRequestParseError("Malformed chunk size") from exc
        position = line_end + 2

        if chunk_size == 0:
            # Trailers are framing only; they are skipped, not exposed.
            terminator = encoded_body.find(b"\r\n\r\n", position - 2)
            if terminator == -1:
                raise HTTPRequestParseError("Incomplete chunked trailer section")
            return bytes(decoded)

        chunk_end = position + chunk_size
        if encoded_body[chunk_end : chunk_end + 2] != b"\r\n":
            raise HTTPRequestParseError("Chunk missing CRLF terminator")
        decoded.extend(encoded_body[position:chunk_end])
        if len(decoded) > MAX_BODY_BYTES:
            raise HTTPRequestParseError("Body exceeded MAX_BODY_BYTES", status_code=413)
        position = chunk_end + 2
