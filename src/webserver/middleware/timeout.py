"""
=============================================================================
REQUEST TIMEOUT MIDDLEWARE
=============================================================================

Bounds the time one request may take, file transfer included.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    TIMEOUT FLOW                                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   deadline = now + timeout                                          │
    │        │                                                             │
    │   response = next(request)                                          │
    │        │                                                             │
    │        ├── past deadline?        close response     → 408           │
    │        │                                                             │
    │        └── has a file stream?    stream.deadline = deadline          │
    │                                                                      │
    │   Connection.send_response                                          │
    │        ├── past deadline before the head?           → 408, close    │
    │        └── past deadline between chunks?   StreamTimeout, close     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The file keeps streaming from disk in chunks; nothing is buffered. A
timed-out response that hasn't started is 408 Request Timeout with an
empty body. Once the head is out the status can't change, so a transfer
that runs past the deadline is cut short and the connection closed: the
client sees fewer bytes than Content-Length.

Each request carries its own deadline. Siblings are never affected.

=============================================================================
"""

import logging
import time

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, request_timeout


logger = logging.getLogger(__name__)


class TimeoutMiddleware(Middleware):
    """
    Aborts requests that take longer than `timeout` seconds.

    Usage:
        pipeline.add(TimeoutMiddleware(config.request_timeout))
    """

    def __init__(self, timeout: float):
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        self.timeout = timeout

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        deadline = time.monotonic() + self.timeout

        response = next(request)

        if time.monotonic() > deadline:
            response.close()
            logger.warning(
                f"Request exceeded {self.timeout:.3f}s: {request.method} {request.path}"
            )
            return request_timeout()

        if response.stream is not None:
            response.stream.deadline = deadline

        return response
