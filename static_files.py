"""Static asset fallback for requests no API route handled."""

from __future__ import annotations

import logging
from pathlib import Path

from config import API_PREFIX, NOT_FOUND_PAGE, NOT_FOUND_STATUS, STATIC_DIR
from hot_reload import HotReloadChannel
from metrics import MetricsRegistry
from request import HTTPRequest
from response import HTTPResponse
from utils import get_content_type, is_under_prefix, resolve_static_file

logger = logging.getLogger(__name__)

WELL_KNOWN_SEGMENT = ".well-known"


class StaticAssetResolver:
    """Serve files from ``<root>/<static_dir>``.

    A missing file under ``api_prefix`` is reported as a failed API call
    (400); any other missing file is answered with the not-found page, read
    from the process working directory, using ``not_found_status``.
    """

    def __init__(
        self,
        root: str | Path | None = None,
        static_dir: str = STATIC_DIR,
        *,
        hot_reload: HotReloadChannel | None = None,
        api_prefix: str | None = API_PREFIX,
        not_found_page: str | Path = NOT_FOUND_PAGE,
        not_found_status: int = NOT_FOUND_STATUS,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.root = Path(root) if root is not None else Path.cwd()
        self.static_root = self.root / static_dir
        self.hot_reload = hot_reload or HotReloadChannel(enabled=False)
        self.api_prefix = api_prefix
        self.not_found_page = Path(not_found_page)
        self.not_found_status = not_found_status
        self._metrics = metrics

    def serve(self, request: HTTPRequest) -> HTTPResponse:
        if self._metrics is not None:
            self._metrics.record_static_hit()

        request_path = request.path
        if WELL_KNOWN_SEGMENT in request_path.split("/"):
            return HTTPResponse(status_code=200)

        if self.hot_reload.is_worker_request(request_path):
            return HTTPResponse(
                status_code=200,
                headers={"Content-Type": "text/javascript"},
                body=self.hot_reload.worker_script,
            )

        filename = resolve_static_file(request_path, self.static_root)
        if filename is None:
            logger.warning("Refusing path outside static root: %s", request_path)
            return HTTPResponse.text(403, "Forbidden")

        status_code = 200
        if not filename.exists():
            if self.looks_like_api_call(request_path):
                return HTTPResponse.text(400, "API call not found")
            logger.error("File not found: %s", filename)
            filename = Path.cwd() / self.not_found_page
            status_code = self.not_found_status
        elif filename.is_dir():
            filename = filename / "index.html"

        try:
            content = filename.read_bytes()
        except OSError as exc:
            logger.exception("Failed to read static file %s", filename)
            return HTTPResponse.text(500, f"{exc}\n")

        if filename.suffix == ".html":
            content = self.hot_reload.inject(content)

        headers: dict[str, str] = {}
        content_type = get_content_type(filename)
        if content_type is not None:
            headers["Content-Type"] = content_type
        return HTTPResponse(status_code=status_code, headers=headers, body=content)

    def looks_like_api_call(self, request_path: str) -> bool:
        return bool(self.api_prefix) and is_under_prefix(request_path, self.api_prefix)
