"""Ordered routing table for the embedded JSON API."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from config import STATE_FILE
from metrics import MetricsRegistry
from request import HTTPRequest
from response import HTTPResponse
from route_matcher import extract_variables, matches
from state_store import StateStore

Handler = Callable[[HTTPRequest, StateStore], HTTPResponse]


@dataclass(frozen=True, slots=True)
class RouteDefinition:
    pattern: str
    handler: Handler
    method: str | None = "GET"

    @property
    def key(self) -> str:
        return f"{self.method or '*'} {self.pattern}"


@dataclass(slots=True)
class RouteOutcome:
    handled: bool
    response: HTTPResponse | None = None
    route: RouteDefinition | None = None


class Router:
    """First-match router over route definitions kept in insertion order.

    There is no specificity ranking: when a literal route and a variable route
    both fit a path, whichever was added first wins.
    """

    def __init__(
        self,
        routes: Iterable[RouteDefinition] | None = None,
        *,
        initial_state: dict[str, Any] | None = None,
        persist_state: bool = False,
        state_file: str | Path = STATE_FILE,
        state_store: StateStore | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._routes: list[RouteDefinition] = []
        self._metrics = metrics
        self._state = state_store or StateStore(
            initial_state=initial_state,
            state_file=state_file,
            persist=persist_state,
            metrics=metrics,
        )
        for route in routes or ():
            self.add_route(route)

    @property
    def routes(self) -> tuple[RouteDefinition, ...]:
        return tuple(self._routes)

    @property
    def state(self) -> StateStore:
        return self._state

    def add_route(self, route: RouteDefinition) -> Router:
        if not route.pattern.startswith("/"):
            raise ValueError("path must start with '/'")
        if route.method is not None and not route.method.strip():
            raise ValueError("method cannot be empty")
        self._routes.append(route)
        return self

    def route(self, pattern: str, method: str | None = "GET") -> Callable[[Handler], Handler]:
        """Decorator form of ``add_route``."""

        def register(handler: Handler) -> Handler:
            self.add_route(RouteDefinition(pattern=pattern, handler=handler, method=method))
            return handler

        return register

    def find(self, request: HTTPRequest) -> RouteDefinition | None:
        url = request.url or ""
        for route in self._routes:
            if matches(
                route.pattern,
                url,
                pattern_method=route.method,
                request_method=request.method,
            ):
                return route
        return None

    def use(self, request: HTTPRequest) -> RouteOutcome:
        """Run the first matching route; persist state afterwards if enabled.

        The save is queued, not awaited: the response is returned whatever
        the outcome of the write.
        """
        route = self.find(request)
        if route is None:
            return RouteOutcome(handled=False)

        request.path_params = extract_variables(route.pattern, request.url or "")
        response = route.handler(request, self._state)
        if self._metrics is not None:
            self._metrics.record_route_hit(route.key)
        self._state.schedule_save()
        return RouteOutcome(handled=True, response=response, route=route)

    @staticmethod
    def create_route(
        url: str,
        method: str | None = "GET",
        data: Any = None,
        status: int = 200,
    ) -> RouteDefinition:
        """Build a canned route that always answers ``status`` with ``data`` as JSON."""
        body = json.dumps({} if data is None else data)

        def respond(_request: HTTPRequest, _state: StateStore) -> HTTPResponse:
            return HTTPResponse(
                status_code=status,
                headers={"Content-Type": "application/json"},
                body=body,
            )

        return RouteDefinition(pattern=url, handler=respond, method=method or "GET")
