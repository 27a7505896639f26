"""
=============================================================================
MIDDLEWARE
=============================================================================

Cross-cutting request processing, wrapped around the router:

    LoggingMiddleware           access log line + X-Request-ID
    InstrumentationMiddleware   request count and latency per route
    TimeoutMiddleware           408 for requests over the time limit

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware
from .instrumentation import InstrumentationMiddleware
from .timeout import TimeoutMiddleware

__all__ = [
    # Base classes
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",

    # Built-in middleware
    "LoggingMiddleware",
    "InstrumentationMiddleware",
    "TimeoutMiddleware",
]
