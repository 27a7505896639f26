"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One line per request on the "webserver.access" logger. WEBSERVER_LOG
addresses it by that name or by its alias "tower_http".

    text    127.0.0.1 - - [18/Oct/2026:10:00:00 +0000] "GET /about.html" 200 5 0.41ms
    json    {"request_id": "3f2a9c1b", "method": "GET", "path": "/about.html",
             "route": "/*path", "status_code": 200, "content_length": 5, ...}

Responses are tagged with X-Request-ID unless include_request_id is off.

Durations stop when the handler returns. A file body streamed by the
connection afterwards is not part of it.

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


access_logger = logging.getLogger("webserver.access")

LOG_FORMATS = ("text", "json")
CLF_TIME = "%d/%b/%Y:%H:%M:%S %z"


@dataclass
class AccessEntry:
    request_id: str
    method: str
    path: str
    route: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def as_json(self) -> str:
        fields = asdict(self)
        fields["duration_ms"] = round(self.duration_ms, 2)
        return json.dumps(fields)

    def as_text(self) -> str:
        return (
            f'{self.client_ip} - - [{self.timestamp}] "{self.method} {self.path}" '
            f'{self.status_code} {self.content_length} {self.duration_ms:.2f}ms'
        )


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


class LoggingMiddleware(Middleware):
    """
    Access log. Add it first so it also sees requests that raise.

    Args:
        log_format: "text" or "json".
        include_request_id: Set X-Request-ID on responses.
        log_level: Level of the access lines.
        skip_paths: Request paths that produce no line.
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        if log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {log_format!r}")

        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = frozenset(skip_paths or ())

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = new_request_id()
        started = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            access_logger.error(
                f"[{request_id}] {request.method} {request.path} failed after "
                f"{self._elapsed_ms(started):.2f}ms: {type(e).__name__}: {e}"
            )
            raise

        duration_ms = self._elapsed_ms(started)

        if self.include_request_id:
            response.headers["X-Request-ID"] = request_id

        if self._should_log(request):
            entry = self._entry(request_id, request, response, duration_ms)
            line = entry.as_json() if self.log_format == "json" else entry.as_text()
            access_logger.log(self.log_level, line)

        return response

    def _should_log(self, request: HTTPRequest) -> bool:
        return request.path not in self.skip_paths and access_logger.isEnabledFor(self.log_level)

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000

    @staticmethod
    def _entry(
        request_id: str,
        request: HTTPRequest,
        response: HTTPResponse,
        duration_ms: float,
    ) -> AccessEntry:
        return AccessEntry(
            request_id=request_id,
            method=request.method,
            path=request.path,
            route=request.route_pattern or request.path,
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=response.content_length,
            duration_ms=duration_ms,
            timestamp=time.strftime(CLF_TIME),
        )
