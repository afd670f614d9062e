"""Example API controller served by ``python server.py``."""

import json
from pathlib import Path

from config import PERSIST_STATE, STATE_FILE
from metrics import MetricsRegistry
from request import HTTPRequest
from response import HTTPResponse
from router import RouteDefinition, Router
from state_store import StateStore


def first(request: HTTPRequest, state: StateStore) -> HTTPResponse:
    with state.transaction() as data:
        data["count"] = data.get("count", 0) + 1
        count = data["count"]
    return HTTPResponse.text(200, f"route {request.url}  was called {count} times")


def second(request: HTTPRequest, state: StateStore) -> HTTPResponse:
    _ = state
    item_id = request.path_params.get("id", "")
    params = json.dumps([list(pair) for pair in request.query_pairs], separators=(",", ":"))
    return HTTPResponse.text(
        200,
        f"route {request.url}  was called with id {item_id} and params {params}",
    )


def build_controller(
    *,
    persist_state: bool = PERSIST_STATE,
    state_file: str | Path = STATE_FILE,
    metrics: MetricsRegistry | None = None,
) -> Router:
    router = Router(
        initial_state={"count": 0},
        persist_state=persist_state,
        state_file=state_file,
        metrics=metrics,
    )
    router.add_route(RouteDefinition("/api/first", first)).add_route(
        RouteDefinition("/api/second/:id", second)
    )
    return router
