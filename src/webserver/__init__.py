"""
=============================================================================
WEBSERVER - Static Website Server
=============================================================================

Serves one directory tree over HTTP/1.1, with a custom 404 page, an
optional per-request timeout and an optional Prometheus metrics
listener. Configured entirely through environment variables.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    webserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m webserver)
    ├── config.py            # ServerConfig, read once from the environment
    ├── errors.py            # Error classes
    ├── log.py               # Env-filter logging setup
    ├── metrics.py           # MetricsRecorder, PrometheusRecorder
    ├── server.py            # HTTPServer (one listener), app builders
    ├── lifecycle.py         # Coordinator: signals, listeners, drain
    ├── core/                # Sockets, connections, thread pool
    ├── http/                # Parsing, responses, routing
    ├── middleware/          # Logging, instrumentation, timeout
    └── handlers/            # Resolver, static files, /metrics

=============================================================================
QUICK START
=============================================================================

    $ WEBSERVER_DIR=./public WEBSERVER_LOG=info python -m webserver

    from webserver import Coordinator, ServerConfig

    Coordinator(ServerConfig.from_env()).run()

=============================================================================
"""

__version__ = "0.2.0"

from .config import ServerConfig
from .lifecycle import Coordinator
from .server import HTTPServer

__all__ = ["Coordinator", "HTTPServer", "ServerConfig", "__version__"]
