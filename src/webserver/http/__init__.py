"""
=============================================================================
HTTP PROTOCOL IMPLEMENTATION
=============================================================================

The HTTP/1.1 layer: raw request bytes in, structured requests out;
structured responses (with streamed file bodies) back to bytes.

    request.py       RequestParser, HTTPRequest, HTTPParseError
    response.py      HTTPResponse, ResponseBuilder, FileStream
    router.py        Router (explicit routes, then one fallback)
    status_codes.py  HTTPStatus
    mime_types.py    extension → Content-Type

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    FileStream,
    StreamTimeout,
    error_response,      # any status, plain text
    method_not_allowed,  # 405 Method Not Allowed
    request_timeout,     # 408 Request Timeout
    internal_error,      # 500 Internal Server Error
    not_modified,        # 304 Not Modified
)
from .router import Router, Route
from .status_codes import HTTPStatus
from .mime_types import get_mime_type, get_content_type

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "FileStream",
    "StreamTimeout",

    # Response convenience functions
    "error_response",
    "method_not_allowed",
    "request_timeout",
    "internal_error",
    "not_modified",

    # Routing
    "Router",
    "Route",

    # Status codes
    "HTTPStatus",

    # MIME types
    "get_mime_type",
    "get_content_type",
]
