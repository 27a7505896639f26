"""
Request instrumentation middleware.

Times every request that passes through and hands a RequestObservation
to the recorder. The path label is the route pattern the router matched
("/", "/*path"), falling back to the raw path when no route matched.

The response is passed through untouched. A handler exception is
observed as status 500 and re-raised.
"""

import time

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from ..http.status_codes import HTTPStatus
from ..metrics import MetricsRecorder, RequestObservation


class InstrumentationMiddleware(Middleware):
    """Records method, route pattern, status and latency per request."""

    def __init__(self, recorder: MetricsRecorder):
        self.recorder = recorder

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        start = time.perf_counter()
        status = int(HTTPStatus.INTERNAL_SERVER_ERROR)

        try:
            response = next(request)
            status = int(response.status)
            return response
        finally:
            self.recorder.record(RequestObservation(
                method=request.method,
                path=request.route_pattern or request.path,
                status=status,
                latency_seconds=time.perf_counter() - start,
            ))
