"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.1 responses per RFC 7230. A response body is either a
small in-memory byte string or a FileStream over an already opened file.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    HTTP/1.1 200 OK\r\n                          ← status line        │
    │    Content-Type: text/html; charset=utf-8\r\n  ← headers            │
    │    Content-Length: 512\r\n                                           │
    │    Last-Modified: Tue, 14 Nov 2023 22:13:20 GMT\r\n                  │
    │    ETag: "1700000000-512"\r\n                                        │
    │    Date: ...\r\n                                                     │
    │    Server: webserver/0.2.0\r\n                                       │
    │    \r\n                                         ← separator          │
    │    <html>...                                    ← body               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STREAMED BODIES
=============================================================================

A file is never read into memory up front. The Static Responder opens it
(so a missing file fails before any byte is written) and attaches a
FileStream; the connection then writes the head and the chunks:

    HTTPResponse(stream=FileStream(path))
        │
        ├── head_bytes()     status line + headers, Content-Length = file size
        └── for chunk in stream:
                sendall(chunk)            64 KiB at a time

Whoever ends up owning the response must call close() on it, which
closes the stream. HEAD requests send head_bytes() only.

A stream may carry a deadline (set by the timeout middleware). Once it
has passed, the next chunk raises StreamTimeout instead of reading on.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Iterator, Optional, Dict, Union
import errno
import os
import stat
import time

from ..errors import ServeError
from .status_codes import HTTPStatus
from .mime_types import get_content_type


CHUNK_SIZE = 64 * 1024


class StreamTimeout(TimeoutError):
    """A FileStream ran past its deadline between two chunks."""


class FileStream:
    """
    An opened regular file, read in fixed-size chunks.

    Opening happens in the constructor. Any OSError (missing file,
    permission denied, directory) is raised as ServeError so the caller
    can turn it into a 500 before the response has started.

    Attributes:
        path:    Path the file was opened from.
        length:  Size in bytes at open time (the Content-Length).
        mtime:   Modification time, whole seconds since the epoch.
        deadline: time.monotonic() value after which iteration raises
                  StreamTimeout. None means no limit.
    """

    def __init__(self, path: Union[str, Path], chunk_size: int = CHUNK_SIZE):
        self.path = Path(path)
        self.chunk_size = chunk_size

        try:
            self._file = open(self.path, "rb")
        except OSError as e:
            raise ServeError(str(self.path), e) from e

        info = os.fstat(self._file.fileno())
        if not stat.S_ISREG(info.st_mode):
            self._file.close()
            error = OSError(errno.EISDIR, "Not a regular file")
            raise ServeError(str(self.path), error)

        self.length = info.st_size
        self.mtime = int(info.st_mtime)
        self.deadline: Optional[float] = None

    @property
    def closed(self) -> bool:
        return self._file.closed

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() > self.deadline

    def __iter__(self) -> Iterator[bytes]:
        while True:
            if self.expired:
                raise StreamTimeout(f"{self.path}: deadline passed mid-body")
            chunk = self._file.read(self.chunk_size)
            if not chunk:
                break
            yield chunk

    def read_all(self) -> bytes:
        """Read the rest of the file and close the stream."""
        try:
            return b"".join(self)
        finally:
            self.close()

    def close(self):
        self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


@dataclass
class HTTPResponse:
    """
    A status, headers and either a byte body or a FileStream.

        Handler returns          head_bytes()            Connection sends
        HTTPResponse    ─────►   + body / stream  ─────►  raw bytes
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    stream: Optional[FileStream] = None
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def content_length(self) -> int:
        """Number of body bytes this response will send."""
        if self.stream is not None:
            return self.stream.length
        return len(self.body)

    def head_bytes(self, server_name: str = "webserver") -> bytes:
        """
        Serialize the status line and headers.

        Content-Length, Date and Server are added when missing. Statuses
        that never carry a body (204, 304) get no Content-Length.
        """
        response_headers = dict(self.headers)

        if self.status.has_body and "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(self.content_length)

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        return "\r\n".join(lines).encode("latin-1") + b"\r\n"

    def to_bytes(self, server_name: str = "webserver") -> bytes:
        """
        Serialize the whole response.

        A streamed body is read to the end (and the stream closed), so
        use this for small responses and tests only.
        """
        head = self.head_bytes(server_name)
        if not self.status.has_body:
            self.close()
            return head
        if self.stream is not None:
            return head + self.stream.read_all()
        return head + self.body

    def close(self):
        """Release the file stream, if any. Safe to call repeatedly."""
        if self.stream is not None:
            self.stream.close()


class ResponseBuilder:
    """
    Chained construction of an HTTPResponse.

        response = (ResponseBuilder()
            .status(HTTPStatus.NOT_FOUND)
            .file(FileStream(not_found_path))
            .build())

    Every method except build() returns self.
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._stream: Optional[FileStream] = None

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def file(self, stream: FileStream) -> "ResponseBuilder":
        """
        Attach an opened file as the body.

        Sets Content-Type from the file extension, plus the validators
        Last-Modified and ETag ("<mtime>-<size>").
        """
        self._stream = stream
        self._headers["Content-Type"] = get_content_type(stream.path)
        self._headers["Last-Modified"] = format_http_date(
            datetime.fromtimestamp(stream.mtime, timezone.utc)
        )
        self._headers["ETag"] = make_etag(stream.mtime, stream.length)
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
            stream=self._stream,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """RFC 7231 IMF-fixdate, e.g. "Mon, 15 Jan 2024 12:30:45 GMT". Naive datetimes are UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


def make_etag(mtime: int, size: int) -> str:
    """Strong validator derived from modification time and size."""
    return f'"{mtime}-{size}"'


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def error_response(status: HTTPStatus, message: Optional[str] = None) -> HTTPResponse:
    """Plain-text error response; the body defaults to the reason phrase."""
    return ResponseBuilder().status(status).text(message or status.phrase).build()


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """405 with the Allow header RFC 7231 requires."""
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .text(HTTPStatus.METHOD_NOT_ALLOWED.phrase)
        .build())


def request_timeout() -> HTTPResponse:
    """408 with an empty body."""
    return ResponseBuilder().status(HTTPStatus.REQUEST_TIMEOUT).build()


def internal_error() -> HTTPResponse:
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR)


def not_modified(headers: Dict[str, str]) -> HTTPResponse:
    """304 carrying the validators of the response it replaces."""
    kept = {name: value for name, value in headers.items()
            if name in ("ETag", "Last-Modified")}
    return ResponseBuilder().status(HTTPStatus.NOT_MODIFIED).headers(kept).build()
