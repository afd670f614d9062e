"""Utility helpers shared across server modules."""

from pathlib import Path
from urllib.parse import unquote

CONTENT_TYPES: dict[str, str] = {
    ".html": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".json": "text/json",
    ".svg": "image/svg+xml",
}


def get_content_type(file_path: Path) -> str | None:
    """Return the MIME type for a served file, or None to omit the header."""
    return CONTENT_TYPES.get(file_path.suffix)


def resolve_static_file(request_path: str, static_root: Path) -> Path | None:
    """Resolve ``request_path`` under ``static_root``; None if it escapes the root."""
    root = static_root.resolve()
    relative_path = unquote(request_path).lstrip("/")
    candidate = (root / relative_path).resolve()

    try:
        candidate.relative_to(root)
    except ValueError:
        return None

    return candidate


def is_under_prefix(request_path: str, prefix: str) -> bool:
    """Segment-wise prefix test: ``/api`` covers ``/api`` and ``/api/x``, not ``/apix``."""
    normalized = "/" + prefix.strip("/")
    if normalized == "/":
        return True
    return request_path == normalized or request_path.startswith(normalized + "/")
