"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the bytes of one request, as framed by Connection.read_request(),
into an HTTPRequest.

    GET /docs/guide.txt?v=2 HTTP/1.1\r\n        request line
    Host: example.com\r\n                       headers
    If-None-Match: "1700000000-512"\r\n
    \r\n                                        end of head
    <Content-Length bytes>                      body

The path is percent-decoded and the query string split off. ".."
segments are left in place: the resolver decides what a path may reach
on disk, and a traversal attempt has to end as a 404 page, not a 400.

=============================================================================
PARSE ERRORS
=============================================================================

    400   malformed request line, header, target or Content-Length
    413   request larger than max_request_size
    501   method token that isn't an HTTP method at all
    505   version other than HTTP/1.0 and HTTP/1.1

Real methods other than GET and HEAD parse; the router answers 405.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, NamedTuple, Optional
from urllib.parse import unquote
import re


HTTP_METHODS = frozenset({
    "GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "TRACE", "CONNECT",
})
SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

_TOKEN = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")
_VERSION = re.compile(r"HTTP/[0-9]\.[0-9]")


class HTTPParseError(Exception):
    """A request that can't be served; status_code is the answer."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed request.

    headers have lowercase names. path is decoded and has no query
    string. route_pattern is filled in by the router.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query: str = ""
    body: bytes = b""

    route_pattern: Optional[str] = None

    client_address: tuple[str, int] = ("", 0)

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_head(self) -> bool:
        return self.method == "HEAD"

    @property
    def is_keep_alive(self) -> bool:
        """HTTP/1.1 defaults to keep-alive, HTTP/1.0 to close."""
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.0":
            return connection == "keep-alive"
        return connection != "close"

    def get_header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)


class RequestLine(NamedTuple):
    method: str
    path: str
    query: str
    version: str


class RequestParser:
    """
    Parses one framed request.

        parser = RequestParser(max_request_size=config.max_request_size)
        request = parser.parse(raw, conn.address)      # HTTPParseError
    """

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: tuple[str, int] = ("", 0)) -> HTTPRequest:
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        head, separator, rest = data.partition(b"\r\n\r\n")
        if not separator:
            raise HTTPParseError("Incomplete request: no header terminator")

        first, *header_lines = head.decode("latin-1").split("\r\n")
        line = parse_request_line(first)
        headers = parse_headers(header_lines)
        length = content_length(headers)

        if len(rest) < length:
            raise HTTPParseError(f"Incomplete body: expected {length} bytes, got {len(rest)}")

        return HTTPRequest(
            method=line.method,
            path=line.path,
            version=line.version,
            headers=headers,
            query=line.query,
            body=rest[:length],
            client_address=client_address,
        )


def parse_request_line(line: str) -> RequestLine:
    """METHOD SP origin-form SP HTTP-version."""
    parts = line.split(" ")
    if len(parts) != 3:
        raise HTTPParseError(f"Invalid request line: {line!r}")

    method, target, version = parts

    if not _TOKEN.fullmatch(method) or not _VERSION.fullmatch(version):
        raise HTTPParseError(f"Invalid request line: {line!r}")
    if method not in HTTP_METHODS:
        raise HTTPParseError(f"Unknown method: {method}", status_code=501)
    if version not in SUPPORTED_VERSIONS:
        raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)
    if not target.startswith("/"):
        raise HTTPParseError(f"Invalid request target: {target!r}")

    raw_path, _, query = target.partition("?")
    raw_path = raw_path.split("#", 1)[0]
    path = unquote(raw_path) or "/"

    if "\x00" in path:
        raise HTTPParseError("Invalid path: contains NUL byte")

    return RequestLine(method, path, query, version)


def parse_headers(lines: list[str]) -> Dict[str, str]:
    """
    Header lines to a dict with lowercase names.

    A repeated header is joined with ", "; a folded continuation line is
    appended to the header before it.
    """
    headers: Dict[str, str] = {}
    last = None

    for line in lines:
        if not line:
            continue

        if line[0] in " \t":
            if last is not None:
                headers[last] = f"{headers[last]} {line.strip()}"
            continue

        name, colon, value = line.partition(":")
        name = name.strip().lower()
        if not colon or not _TOKEN.fullmatch(name):
            raise HTTPParseError(f"Invalid header line: {line!r}")

        value = value.strip()
        headers[name] = f"{headers[name]}, {value}" if name in headers else value
        last = name

    return headers


def content_length(headers: Dict[str, str]) -> int:
    raw = headers.get("content-length", "0").strip()
    if not raw.isdigit():
        raise HTTPParseError("Invalid Content-Length")
    return int(raw)


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 1024 * 1024,
) -> HTTPRequest:
    """Parse one request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
