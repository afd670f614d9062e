"""Path-pattern matching for API routes.

Patterns are ``/``-delimited templates. A segment starting with ``:`` is a
variable and matches any single request segment; every other segment must
match exactly (case-sensitive). Query strings never take part in matching.
"""

from __future__ import annotations


def strip_query(request_path: str) -> str:
    return request_path.split("?", 1)[0]


def split_path(path: str) -> list[str]:
    return path.split("/")


def is_variable(segment: str) -> bool:
    return segment.startswith(":")


def matches(
    pattern: str,
    request_path: str,
    *,
    pattern_method: str | None = None,
    request_method: str | None = None,
) -> bool:
    """Return True when ``request_path`` (and method, if both are set) fits ``pattern``."""
    pattern_parts = split_path(pattern)
    request_parts = split_path(strip_query(request_path))
    if len(pattern_parts) != len(request_parts):
        return False

    if pattern_method and request_method and pattern_method.upper() != request_method.upper():
        return False

    return all(
        is_variable(part) or part == request_parts[index]
        for index, part in enumerate(pattern_parts)
    )


def extract_variables(pattern: str, request_path: str) -> dict[str, str]:
    """Bind each ``:name`` segment of ``pattern`` to the request segment at its position."""
    request_parts = split_path(strip_query(request_path))
    variables: dict[str, str] = {}
    for index, part in enumerate(split_path(pattern)):
        if not is_variable(part):
            continue
        variables[part[1:]] = request_parts[index] if index < len(request_parts) else ""
    return variables
