"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes a static file server actually sends, with their reason
phrases.

    ┌────────────────────────────────────────────────────────────────────┐
    │                     STATUS CODES WE SEND                           │
    ├────────┬───────────────────────────────────────────────────────────┤
    │  2xx   │ 200 OK              - File found and served              │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  3xx   │ 304 Not Modified    - ETag matched, use cached copy      │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400 Bad Request     - Malformed request                  │
    │        │ 404 Not Found       - Not-found page substituted         │
    │        │ 405 Method Not Allowed - Only GET and HEAD are routed    │
    │        │ 408 Request Timeout - Read or request timeout exceeded   │
    │        │ 413 Payload Too Large                                    │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 Internal Error  - File could not be opened           │
    │        │ 503 Service Unavailable - Worker queue full              │
    │        │ 505 HTTP Version Not Supported                           │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
"""

import http
from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    The statuses this server sends. Reason phrases come from the
    standard library table.

    IntEnum, so codes compare equal to plain integers:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    # 2xx SUCCESS
    OK = 200
    NO_CONTENT = 204

    # 3xx REDIRECTION
    NOT_MODIFIED = 304

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """
        Reason phrase for the status line.

            HTTP/1.1 404 Not Found
                     ─── ─────────
                      │      └── phrase
                      └───────── code
        """
        return http.HTTPStatus(self).phrase

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self < 600

    @property
    def has_body(self) -> bool:
        """1xx, 204 and 304 responses never carry a body (RFC 7230 3.3)."""
        return not (self < 200 or self in (HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED))

