"""
Unit tests for HTTP response building.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from webserver.errors import ServeError
from webserver.http.response import (
    CHUNK_SIZE,
    FileStream,
    HTTPResponse,
    ResponseBuilder,
    error_response,
    format_http_date,
    internal_error,
    make_etag,
    method_not_allowed,
    not_modified,
    request_timeout,
)
from webserver.http.status_codes import HTTPStatus


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        response = HTTPResponse(status=HTTPStatus.NOT_FOUND)

        assert response.status_line == "HTTP/1.1 404 Not Found"

    def test_head_includes_headers(self):
        response = HTTPResponse(headers={"Content-Type": "text/plain"}, body=b"hello")

        head = response.head_bytes("test-server").decode("latin-1")

        assert head.startswith("HTTP/1.1 200 OK\r\n")
        assert "Content-Type: text/plain\r\n" in head
        assert "Content-Length: 5\r\n" in head
        assert "Server: test-server\r\n" in head
        assert "Date: " in head
        assert head.endswith("\r\n\r\n")

    def test_to_bytes(self):
        response = HTTPResponse(body=b"hello")

        assert response.to_bytes().endswith(b"\r\n\r\nhello")

    def test_no_content_length_without_body(self):
        response = HTTPResponse(status=HTTPStatus.NOT_MODIFIED)

        assert b"Content-Length" not in response.head_bytes()


class TestFileStream:
    """Tests for FileStream."""

    def test_length_and_chunks(self, tmp_path: Path):
        path = tmp_path / "big.bin"
        path.write_bytes(b"x" * (CHUNK_SIZE + 10))

        with FileStream(path) as stream:
            chunks = list(stream)

        assert stream.length == CHUNK_SIZE + 10
        assert [len(chunk) for chunk in chunks] == [CHUNK_SIZE, 10]

    def test_read_all_closes(self, public_dir: Path):
        stream = FileStream(public_dir / "index.html")

        assert stream.read_all() == b"HOME"
        assert stream.closed

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ServeError) as exc_info:
            FileStream(tmp_path / "missing.html")

        assert exc_info.value.path.endswith("missing.html")
        assert isinstance(exc_info.value.cause, OSError)

    def test_directory_is_not_streamed(self, public_dir: Path):
        with pytest.raises(ServeError):
            FileStream(public_dir / "docs")


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_status(self):
        response = ResponseBuilder().status(HTTPStatus.NOT_FOUND).build()

        assert response.status == HTTPStatus.NOT_FOUND

    def test_text_body(self):
        response = ResponseBuilder().text("Hello").build()

        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert response.body == b"Hello"

    def test_file(self, public_dir: Path):
        stream = FileStream(public_dir / "style.css")

        response = ResponseBuilder().file(stream).build()

        assert response.stream is stream
        assert response.headers["Content-Type"] == "text/css; charset=utf-8"
        assert response.headers["ETag"] == make_etag(stream.mtime, stream.length)
        assert response.content_length == stream.length
        response.close()

    def test_method_chaining(self):
        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .header("X-Custom", "value")
            .headers({"Content-Type": "application/json"})
            .body('{"ok": true}')
            .build())

        assert response.headers["X-Custom"] == "value"
        assert response.headers["Content-Type"] == "application/json"
        assert response.body == b'{"ok": true}'


class TestConvenienceFunctions:
    """Tests for response convenience functions."""

    def test_error_response_default_message(self):
        response = error_response(HTTPStatus.BAD_REQUEST)

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.body == b"Bad Request"

    def test_method_not_allowed(self):
        response = method_not_allowed(["GET", "HEAD"])

        assert response.status == 405
        assert response.headers["Allow"] == "GET, HEAD"

    def test_request_timeout_is_empty(self):
        response = request_timeout()

        assert response.status == HTTPStatus.REQUEST_TIMEOUT
        assert response.body == b""

    def test_internal_error(self):
        assert internal_error().status == 500

    def test_not_modified_keeps_validators(self):
        response = not_modified({
            "ETag": '"1-2"',
            "Last-Modified": "Thu, 01 Jan 1970 00:00:01 GMT",
            "Content-Type": "text/html",
        })

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert set(response.headers) == {"ETag", "Last-Modified"}


class TestHTTPStatus:
    """Tests for HTTPStatus enum."""

    def test_status_phrases(self):
        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.NOT_FOUND.phrase == "Not Found"
        assert HTTPStatus.REQUEST_TIMEOUT.phrase == "Request Timeout"

    def test_status_categories(self):
        assert HTTPStatus.OK.is_success
        assert HTTPStatus.NOT_FOUND.is_client_error
        assert HTTPStatus.INTERNAL_SERVER_ERROR.is_server_error

    def test_has_body(self):
        assert HTTPStatus.NOT_FOUND.has_body
        assert not HTTPStatus.NO_CONTENT.has_body
        assert not HTTPStatus.NOT_MODIFIED.has_body


class TestFormatHTTPDate:
    """Tests for HTTP date formatting."""

    def test_format(self):
        dt = datetime(2024, 1, 15, 12, 30, 45, tzinfo=timezone.utc)

        assert format_http_date(dt) == "Mon, 15 Jan 2024 12:30:45 GMT"

    def test_naive_datetime_is_utc(self):
        assert format_http_date(datetime(1970, 1, 1, 0, 0, 1)) == "Thu, 01 Jan 1970 00:00:01 GMT"

    def test_other_timezone_is_converted(self):
        plus_two = timezone(timedelta(hours=2))
        dt = datetime(2024, 1, 15, 14, 30, 45, tzinfo=plus_two)

        assert format_http_date(dt) == "Mon, 15 Jan 2024 12:30:45 GMT"
