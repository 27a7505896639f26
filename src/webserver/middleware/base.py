"""
=============================================================================
MIDDLEWARE
=============================================================================

A middleware is a callable wrapped around the rest of the chain:

    def __call__(self, request, next):
        response = next(request)
        return response

It may answer without calling next (short-circuit), or replace the
response on the way out.

=============================================================================
SITE CHAIN
=============================================================================

        ┌─────────────────────────────────────────────────────────┐
        │  LoggingMiddleware                                      │
        │  ┌───────────────────────────────────────────────────┐  │
        │  │  InstrumentationMiddleware       (metrics on)     │  │
        │  │  ┌─────────────────────────────────────────────┐  │  │
        │  │  │  TimeoutMiddleware           (timeout > 0)  │  │  │
        │  │  │  ┌─────────────────────────────────────┐    │  │  │
        │  │  │  │         router.handle               │    │  │  │
        │  │  │  └─────────────────────────────────────┘    │  │  │
        │  │  └─────────────────────────────────────────────┘  │  │
        │  └───────────────────────────────────────────────────┘  │
        └─────────────────────────────────────────────────────────┘

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from functools import partial
from typing import Callable, Iterator, List

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)

NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """Base class: implement __call__(request, next)."""

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class MiddlewarePipeline:
    """
    Ordered middleware around one final handler.

        handler = MiddlewarePipeline().add(outer).add(inner).wrap(router.handle)

    The first middleware added sees the request first and the response
    last.
    """

    def __init__(self):
        self._layers: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._layers.append(middleware)
        logger.debug(f"Middleware layer {len(self._layers)}: {middleware!r}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """Build the chain. An empty pipeline returns handler unchanged."""
        for middleware in reversed(self._layers):
            handler = partial(middleware, next=handler)
        return handler

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._layers)
