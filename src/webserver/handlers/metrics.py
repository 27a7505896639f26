"""
Metrics exposition endpoint.

    GET /metrics   →   200 text/plain; version=0.0.4

Served on its own listener; the body is whatever the shared recorder
renders at the moment of the request. No caching.
"""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder
from ..metrics import CONTENT_TYPE, MetricsRecorder


class MetricsHandler:
    """
    Renders a MetricsRecorder for scraping.

    Usage:
        router.add_route("/metrics", MetricsHandler(recorder))
    """

    def __init__(self, recorder: MetricsRecorder):
        self.recorder = recorder

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return (ResponseBuilder()
            .text(self.recorder.render(), content_type=CONTENT_TYPE)
            .header("Cache-Control", "no-store")
            .build())
