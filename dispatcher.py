"""Per-request control flow: API routes first, static assets second."""

from __future__ import annotations

import logging

from metrics import MetricsRegistry
from request import HTTPRequest
from response import HTTPResponse
from router import Router
from static_files import StaticAssetResolver

logger = logging.getLogger(__name__)


class Dispatcher:
    def __init__(
        self,
        router: Router,
        static_resolver: StaticAssetResolver,
        *,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.router = router
        self.static_resolver = static_resolver
        self._metrics = metrics

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        try:
            outcome = self.router.use(request)
        except Exception:
            logger.exception(
                "Unhandled error in route handler for %s %s", request.method, request.url
            )
            if self._metrics is not None:
                self._metrics.record_handler_error()
            return HTTPResponse.text(500, "Internal Server Error")

        if not outcome.handled:
            return self.static_resolver.serve(request)
        if outcome.response is None:
            route_key = outcome.route.key if outcome.route else "?"
            logger.error("Route %s returned no response", route_key)
            return HTTPResponse.text(500, "Internal Server Error")
        return outcome.response
