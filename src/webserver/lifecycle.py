"""
=============================================================================
LIFECYCLE COORDINATION
=============================================================================

Runs the site listener and, when metrics are enabled, the metrics
listener side by side, and stops them together.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          COORDINATOR                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   main thread          install SIGINT/SIGTERM handlers               │
    │        │                                                             │
    │        ├──► thread "site-listener"     validate → bind → serve       │
    │        ├──► thread "metrics-listener"  validate → bind → serve       │
    │        │                                                             │
    │        └──► join both                                                │
    │                                                                      │
    │   SIGINT / SIGTERM ──► shutdown_event.set()   (once, both listeners) │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FAILURE ISOLATION
=============================================================================

A listener whose configuration is invalid (ConfigError) or whose socket
can't be bound (OSError) logs the error and its thread ends. The other
listener is unaffected. When no listener is left, run() returns.

Failing to install the signal handlers is the one fatal condition:
SignalHandlerError propagates out of run().

=============================================================================
"""

import logging
import signal
import threading
from typing import Dict, List, Optional

from .config import METRICS, SITE, ServerConfig
from .errors import ConfigError, SignalHandlerError
from .metrics import MetricsRecorder, NoopRecorder, PrometheusRecorder
from .server import HTTPServer, build_metrics_app, build_site_app


logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)
JOIN_POLL_INTERVAL = 0.25


class Coordinator:
    """
    Starts, runs and stops every listener of the process.

    Usage:
        coordinator = Coordinator(ServerConfig.from_env())
        coordinator.run()                 # blocks until drained

    In tests:
        coordinator.run(install_signals=False)   # in a thread
        coordinator.shutdown()
    """

    def __init__(self, config: ServerConfig, recorder: Optional[MetricsRecorder] = None):
        self.config = config

        if recorder is None:
            recorder = PrometheusRecorder() if config.metrics_enabled else NoopRecorder()
        self.recorder = recorder

        self.shutdown_event = threading.Event()
        self.listeners: Dict[str, HTTPServer] = {}

        self._threads: List[threading.Thread] = []
        self._settled: Dict[str, threading.Event] = {
            name: threading.Event() for name in self.listener_names
        }
        self._original_handlers: dict = {}

    @property
    def listener_names(self) -> List[str]:
        names = [SITE]
        if self.config.metrics_enabled:
            names.append(METRICS)
        return names

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def install_signal_handlers(self):
        """
        Route SIGINT and SIGTERM to shutdown().

        Raises:
            SignalHandlerError: Not on the main thread, or the platform
                refused the handler.
        """
        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        try:
            for sig in SHUTDOWN_SIGNALS:
                self._original_handlers[sig] = signal.signal(sig, shutdown_handler)
        except (ValueError, OSError) as e:
            self.restore_signal_handlers()
            raise SignalHandlerError(f"failed to install signal handler: {e}") from e

    def restore_signal_handlers(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def shutdown(self):
        """Start draining every listener. Safe to call more than once."""
        if self.shutdown_event.is_set():
            return
        logger.info("Shutting down...")
        self.shutdown_event.set()

    # =========================================================================
    # RUNNING
    # =========================================================================

    def run(self, install_signals: bool = True):
        """
        Run every listener until shutdown, then wait for them to drain.

        Raises:
            SignalHandlerError: install_signals and the handlers couldn't
                be installed.
        """
        if install_signals:
            self.install_signal_handlers()

        try:
            self._log_startup()
            self.start()
            self.wait()
        finally:
            self.restore_signal_handlers()

        logger.info("All listeners stopped")

    def start(self):
        """Start one thread per enabled listener."""
        for name in self.listener_names:
            thread = threading.Thread(
                target=self._run_listener,
                args=(name,),
                name=f"{name}-listener",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

    def wait(self):
        """Join listener threads, staying responsive to signals."""
        for thread in self._threads:
            while thread.is_alive():
                thread.join(JOIN_POLL_INTERVAL)

    def wait_until_started(self, timeout: Optional[float] = None) -> bool:
        """Block until every listener is serving or has been dropped."""
        return all(event.wait(timeout) for event in self._settled.values())

    def _run_listener(self, name: str):
        settled = self._settled[name]

        try:
            listener = self._bind_listener(name)
        except (ConfigError, OSError) as e:
            logger.error(f"{name} listener failed to start: {e}")
            settled.set()
            return

        host, port = listener.server_address[:2]
        logger.info(f"{name} listening on {host}:{port}")

        # The socket is listening; clients queue in the backlog until
        # the accept loop picks them up.
        settled.set()
        listener.serve(self.shutdown_event)

    def _bind_listener(self, name: str) -> HTTPServer:
        """
        Validate a listener's settings, build its app and bind it.

        Raises:
            ConfigError: The listener's configuration is invalid.
            OSError: The address can't be bound.
        """
        if name == SITE:
            bind = self.config.check_site()
            app = build_site_app(self.config, self.recorder)
        else:
            bind = self.config.listener(METRICS)
            app = build_metrics_app(self.recorder)

        listener = HTTPServer(name, app, self.config)
        listener.bind(bind.host, bind.port)
        self.listeners[name] = listener
        return listener

    def _log_startup(self):
        logger.info(f"Serving directory: {self.config.root_dir}")
        logger.info(f"Index file: {self.config.index_path}")
        logger.info(f"Not-found file: {self.config.not_found_path}")
        if self.config.request_timeout_ms > 0:
            logger.info(f"Request timeout: {self.config.request_timeout_ms}ms")
        if not self.config.metrics_enabled:
            logger.info("Metrics listener disabled")
