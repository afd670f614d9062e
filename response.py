"""HTTP response model and serializer."""

from dataclasses import dataclass, field
from email.utils import formatdate

from config import SERVER_NAME

REASON_PHRASES: dict[int, str] = {
    200: "OK",
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
    408: "Request Timeout",
    413: "Payload Too Large",
    414: "URI Too Long",
    431: "Request Header Fields Too Large",
    500: "Internal Server Error",
    501: "Not Implemented",
    503: "Service Unavailable",
    505: "HTTP Version Not Supported",
}


@dataclass(slots=True)
class HTTPResponse:
    status_code: int
    reason_phrase: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | str = b""
    should_close: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.body, str):
            self.body = self.body.encode("utf-8")

    @classmethod
    def text(cls, status_code: int, body: str) -> "HTTPResponse":
        return cls(
            status_code=status_code,
            headers={"Content-Type": "text/plain"},
            body=body,
        )

    @property
    def reason(self) -> str:
        return self.reason_phrase or REASON_PHRASES.get(self.status_code, "Unknown")

    def head_bytes(self) -> bytes:
        """Serialize the status line and headers.

        ``Content-Type`` is only sent when the producer set one; static files
        with an unrecognised extension go out without it.
        """
        headers = dict(self.headers)
        headers.setdefault("Date", formatdate(timeval=None, localtime=False, usegmt=True))
        headers.setdefault("Server", SERVER_NAME)
        headers["Content-Length"] = str(len(self.body))
        if self.should_close:
            headers["Connection"] = "close"

        lines = [f"HTTP/1.1 {self.status_code} {self.reason}"]
        lines.extend(f"{key}: {value}" for key, value in headers.items())
        return "\r\n".join(lines).encode("iso-8859-1") + b"\r\n\r\n"

    def to_bytes(self) -> bytes:
        """Serialize the response into HTTP/1.1 wire format bytes."""
        return self.head_bytes() + bytes(self.body)
