"""
Unit tests for StaticResponder.
"""

from pathlib import Path

import pytest

from webserver.errors import ServeError
from webserver.handlers import StaticResponder
from webserver.http import HTTPStatus

from conftest import make_request


@pytest.fixture
def static(public_dir: Path) -> StaticResponder:
    return StaticResponder(public_dir, "404.html")


class TestStaticResponder:
    """Tests for serving resolved targets."""

    def test_serve_root(self, static: StaticResponder):
        response = static.serve_root(make_request("GET", "/"))

        assert response.status == HTTPStatus.OK
        assert response.stream.read_all() == b"HOME"
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"

    def test_serve_file(self, static: StaticResponder):
        response = static.serve_tree(make_request("GET", "/style.css"))

        assert response.status == HTTPStatus.OK
        assert response.content_length == len("body { color: red; }")
        assert response.headers["Content-Type"].startswith("text/css")
        response.close()

    def test_not_found_page_has_404_status(self, static: StaticResponder):
        response = static.serve_tree(make_request("GET", "/nope"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.stream.read_all() == b"MISSING"

    def test_traversal_gets_not_found_page(self, static: StaticResponder):
        response = static.serve_tree(make_request("GET", "/../etc/passwd"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.stream.read_all() == b"MISSING"

    def test_validators(self, static: StaticResponder):
        response = static.serve_tree(make_request("GET", "/about.html"))

        assert response.headers["ETag"].startswith('"')
        assert response.headers["Last-Modified"].endswith("GMT")
        response.close()

    def test_if_none_match(self, static: StaticResponder):
        first = static.serve_tree(make_request("GET", "/about.html"))
        etag = first.headers["ETag"]
        first.close()

        response = static.serve_tree(
            make_request("GET", "/about.html", {"if-none-match": etag})
        )

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert response.stream is None
        assert response.headers["ETag"] == etag

    def test_if_none_match_not_applied_to_404(self, static: StaticResponder):
        response = static.serve_tree(
            make_request("GET", "/nope", {"if-none-match": "*"})
        )

        assert response.status == HTTPStatus.NOT_FOUND
        response.close()

    def test_missing_not_found_page(self, public_dir: Path):
        static = StaticResponder(public_dir, "does-not-exist.html")

        with pytest.raises(ServeError) as excinfo:
            static.serve_tree(make_request("GET", "/nope"))

        assert "does-not-exist.html" in str(excinfo.value)

    def test_missing_root_index(self, public_dir: Path):
        """A missing index.html on "/" is an error, not the 404 page."""
        (public_dir / "index.html").unlink()
        static = StaticResponder(public_dir, "404.html")

        with pytest.raises(ServeError):
            static.serve_root(make_request("GET", "/"))

    def test_missing_nested_index_uses_404_page(self, public_dir: Path):
        (public_dir / "docs" / "index.html").unlink()
        static = StaticResponder(public_dir, "404.html")

        response = static.serve_tree(make_request("GET", "/docs/"))

        assert response.status == HTTPStatus.NOT_FOUND
        response.close()
