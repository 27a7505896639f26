"""
=============================================================================
LISTENERS
=============================================================================

One HTTPServer is one listener: a bound socket, its own worker pool and
a wrapped handler. The process runs a site listener and, when metrics
are enabled, a metrics listener, each an HTTPServer.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         ONE LISTENER                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    SocketServer ── accept ──► ThreadPool ──► _process_connection     │
    │                                                 │                    │
    │                                                 ▼                    │
    │                         Logging → Instrumentation → Timeout → Router │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LISTENER STATES
=============================================================================

    IDLE ──bind()──► BINDING ──serve()──► SERVING ──shutdown──► DRAINING
                        │                                          │
                        └── OSError (listener dropped)             ▼
                                                                STOPPED

    DRAINING: the listening socket is closed first, so new connections
    are refused. Connections already accepted finish their current
    request with `Connection: close`. The pool is joined with no
    deadline; the per-request timeout is the only bound.

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. read one request off the connection     (timeout → 408)
    2. parse it                                 (HTTPParseError → 4xx/5xx)
    3. run the wrapped handler                  (ServeError → 500)
    4. add Connection / Keep-Alive headers
    5. send it, streaming any file body         (HEAD → headers only)
    6. keep-alive: back to 1, otherwise close

=============================================================================
"""

import logging
import threading
from enum import Enum
from typing import Callable, Optional

from .config import ServerConfig
from .core import Connection, ConnectionState, RequestTooLarge, SocketServer, ThreadPool
from .errors import ServeError
from .handlers import MetricsHandler, StaticResponder
from .http import (
    HTTPParseError,
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    RequestParser,
    Router,
    error_response,
    internal_error,
)
from .metrics import MetricsRecorder
from .middleware import (
    InstrumentationMiddleware,
    LoggingMiddleware,
    MiddlewarePipeline,
    TimeoutMiddleware,
)


logger = logging.getLogger(__name__)

Handler = Callable[[HTTPRequest], HTTPResponse]

METRICS_PATH = "/metrics"


class ListenerState(Enum):
    """Listener lifecycle states."""
    IDLE = "idle"
    BINDING = "binding"
    SERVING = "serving"
    DRAINING = "draining"
    STOPPED = "stopped"


class HTTPServer:
    """
    A single HTTP/1.1 listener.

    Usage:
        server = HTTPServer("site", build_site_app(config, recorder), config)
        server.bind("0.0.0.0", 8080)      # raises OSError
        server.serve(shutdown_event)      # blocks until drained
    """

    def __init__(self, name: str, handler: Handler, config: Optional[ServerConfig] = None):
        """
        Args:
            name: "site" or "metrics"; names threads and log lines.
            handler: The wrapped request handler (middleware + router).
            config: Tuning values. Defaults to ServerConfig().
        """
        self.name = name
        self.config = config or ServerConfig()
        self.config.validate()

        self.state = ListenerState.IDLE

        self._handler = handler
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        self._socket_server = SocketServer(
            name=name,
            backlog=self.config.backlog,
            connection_options={
                "buffer_size": self.config.buffer_size,
                "timeout": self.config.read_timeout,
                "keep_alive_timeout": self.config.keep_alive_timeout,
                "max_request_size": self.config.max_request_size,
            },
        )

        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            name=name,
        )

        self._serving = threading.Event()

    @property
    def server_address(self) -> tuple[str, int]:
        return self._socket_server.server_address

    @property
    def pool(self) -> ThreadPool:
        return self._thread_pool

    def wait_until_serving(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop is running."""
        return self._serving.wait(timeout)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def bind(self, host: str, port: int):
        """
        Bind the listening socket.

        Raises:
            OSError: Binding failed; the listener stays unusable.
        """
        self.state = ListenerState.BINDING
        try:
            self._socket_server.bind(host, port)
        except OSError:
            self.state = ListenerState.STOPPED
            raise

    def serve(self, shutdown_event: threading.Event):
        """
        Serve until shutdown_event is set, then drain.

        Must be called after bind().
        """
        if self.state != ListenerState.BINDING:
            raise RuntimeError(f"{self.name} listener must be bound before serving")

        self._thread_pool.start()
        self.state = ListenerState.SERVING
        self._serving.set()

        try:
            self._socket_server.serve(self._handle_connection, shutdown_event)
        finally:
            self._drain()

    def _drain(self):
        self.state = ListenerState.DRAINING
        stats = self._thread_pool.stats
        logger.info(
            f"{self.name} listener draining: {stats['workers']['busy']} busy worker(s), "
            f"{stats['tasks']['queued']} queued connection(s)"
        )

        self._socket_server.close()
        self._thread_pool.shutdown(wait=True)

        self.state = ListenerState.STOPPED
        self._serving.clear()
        logger.info(f"{self.name} listener stopped")

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Queue an accepted connection on the pool, or answer 503."""
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
            block=False,
        )

        if not submitted:
            logger.warning(f"[{conn.id}] {self.name} pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection):
        """Keep-alive loop for one connection (runs in a worker thread)."""
        with conn:
            while True:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break
                except RequestTooLarge as e:
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    self._send_error(conn, HTTPStatus(e.status_code), str(e))
                    break

                conn.state = ConnectionState.PROCESSING
                response = self._dispatch(conn, request)

                keep_alive = (
                    request.is_keep_alive
                    and self.config.keep_alive
                    and not conn.stopping
                )

                if keep_alive:
                    response.headers.setdefault("Connection", "keep-alive")
                    response.headers.setdefault(
                        "Keep-Alive",
                        f"timeout={int(self.config.keep_alive_timeout)}"
                    )
                else:
                    response.headers["Connection"] = "close"

                sent = conn.send_response(
                    response,
                    self.config.server_name,
                    head_only=request.is_head,
                )
                if not sent or not keep_alive:
                    break

                conn.set_keep_alive()

    def _dispatch(self, conn: Connection, request: HTTPRequest) -> HTTPResponse:
        """Run the wrapped handler; failures become a 500."""
        try:
            return self._handler(request)
        except ServeError as e:
            logger.exception(f"[{conn.id}] {e}")
            return internal_error()
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            return internal_error()

    def _send_error(self, conn: Connection, status: HTTPStatus, message: str):
        """Error response for failures before a request reaches the handler."""
        response = error_response(status, message)
        response.headers["Connection"] = "close"
        conn.send_response(response, self.config.server_name)


# =============================================================================
# APPLICATIONS
# =============================================================================

def build_site_router(config: ServerConfig) -> Router:
    """
    The site's route table.

        "/"        → index.html, explicit route
        "/*path"   → resolver, catch-all (always tried last)
    """
    static = StaticResponder(config.root_dir, config.not_found_file)

    router = Router()
    router.add_route("/", static.serve_root)
    router.fallback(static.serve_tree)
    return router


def build_site_app(config: ServerConfig, recorder: MetricsRecorder) -> Handler:
    """
    Wrap the site router in its middleware.

    Instrumentation wraps the whole router, so "/" and the catch-all are
    both observed, and sits outside the timeout so 408s are counted.
    """
    pipeline = MiddlewarePipeline()
    pipeline.add(LoggingMiddleware(log_format=config.log_format))

    if recorder.enabled:
        pipeline.add(InstrumentationMiddleware(recorder))

    if config.request_timeout_ms > 0:
        pipeline.add(TimeoutMiddleware(config.request_timeout))

    return pipeline.wrap(build_site_router(config).handle)


def build_metrics_app(recorder: MetricsRecorder) -> Handler:
    """GET /metrics, nothing else."""
    router = Router()
    router.add_route(METRICS_PATH, MetricsHandler(recorder))

    pipeline = MiddlewarePipeline()
    pipeline.add(LoggingMiddleware(include_request_id=False, log_level=logging.DEBUG))
    return pipeline.wrap(router.handle)
