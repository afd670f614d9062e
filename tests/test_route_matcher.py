"""Unit tests for route pattern matching and path variables."""

import pytest

from route_matcher import extract_variables, matches


@pytest.mark.parametrize(
    "request_path",
    ["/api/second/42", "/api/second/abc", "/api/second/", "/api/second/42?x=1"],
)
def test_variable_segment_matches_any_value(request_path: str) -> None:
    assert matches("/api/second/:id", request_path) is True


@pytest.mark.parametrize(
    "request_path",
    ["/api/second", "/api/second/42/extra", "/api", "/"],
)
def test_different_segment_counts_never_match(request_path: str) -> None:
    assert matches("/api/second/:id", request_path) is False


def test_literal_segments_are_case_sensitive() -> None:
    assert matches("/api/first", "/api/first") is True
    assert matches("/api/first", "/API/first") is False
    assert matches("/api/first", "/api/other") is False


def test_method_filter_is_case_insensitive() -> None:
    assert matches("/api/first", "/api/first", pattern_method="GET", request_method="get")
    assert not matches("/api/first", "/api/first", pattern_method="GET", request_method="POST")


def test_missing_method_on_either_side_skips_method_check() -> None:
    assert matches("/api/first", "/api/first", pattern_method=None, request_method="DELETE")
    assert matches("/api/first", "/api/first", pattern_method="PUT", request_method=None)


def test_query_string_does_not_affect_literal_match() -> None:
    assert matches("/api/first", "/api/first?debug=1") is True


def test_extract_variables_strips_query() -> None:
    assert extract_variables("/api/second/:id", "/api/second/42?x=1") == {"id": "42"}


def test_extract_variables_binds_multiple_names() -> None:
    variables = extract_variables("/users/:user/posts/:post", "/users/ada/posts/7")

    assert variables == {"user": "ada", "post": "7"}


def test_extract_variables_defaults_missing_segments_to_empty() -> None:
    assert extract_variables("/a/:b/:c", "/a/x") == {"b": "x", "c": ""}
