"""Unit tests for content types and static path helpers."""

from pathlib import Path

from utils import get_content_type, is_under_prefix, resolve_static_file


def test_content_type_table() -> None:
    assert get_content_type(Path("a.html")) == "text/html"
    assert get_content_type(Path("a.css")) == "text/css"
    assert get_content_type(Path("a.js")) == "text/javascript"
    assert get_content_type(Path("a.json")) == "text/json"
    assert get_content_type(Path("a.svg")) == "image/svg+xml"
    assert get_content_type(Path("a.png")) is None
    assert get_content_type(Path("Makefile")) is None


def test_resolve_static_file_stays_inside_root(tmp_path: Path) -> None:
    root = tmp_path / "public"
    root.mkdir()

    assert resolve_static_file("/css/site.css", root) == (root / "css" / "site.css").resolve()
    assert resolve_static_file("/", root) == root.resolve()
    assert resolve_static_file("/../outside.txt", root) is None
    assert resolve_static_file("/a/../../outside.txt", root) is None


def test_is_under_prefix_matches_whole_segments() -> None:
    assert is_under_prefix("/api", "/api")
    assert is_under_prefix("/api/users/1", "/api")
    assert is_under_prefix("/api/users", "api/")
    assert not is_under_prefix("/apis", "/api")
    assert not is_under_prefix("/static/api.js", "/api")
