"""
=============================================================================
URL ROUTER
=============================================================================

Maps request paths to handlers. A route is either an exact path ("/",
"/metrics") or the catch-all "/*path", and lists the methods it answers.

=============================================================================
EXPLICIT ROUTES BEFORE THE FALLBACK
=============================================================================

A router holds any number of explicit routes and at most one fallback:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        SITE ROUTE TABLE                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   explicit   GET,HEAD  /          → root document (index.html)      │
    │   ────────────────────────────────────────────────────────────      │
    │   fallback   GET,HEAD  /*path     → resolver + static responder     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The fallback is only consulted after every explicit route failed to
match, no matter whether it was registered first or last. So
"GET /" always reaches the root document route.

The matched pattern is written to request.route_pattern. The
instrumentation middleware labels metrics with it, which keeps label
cardinality bounded ("/*path" instead of every file name).

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, List

from .request import HTTPRequest
from .response import HTTPResponse, error_response, method_not_allowed
from .status_codes import HTTPStatus


Handler = Callable[[HTTPRequest], HTTPResponse]

READ_METHODS = ("GET", "HEAD")
FALLBACK_PATTERN = "/*path"


@dataclass
class Route:
    """A URL pattern bound to a handler for a set of methods."""

    path: str
    methods: tuple[str, ...]
    handler: Handler

    @property
    def is_fallback(self) -> bool:
        return self.path == FALLBACK_PATTERN

    def matches_path(self, path: str) -> bool:
        return self.is_fallback or path == self.path


class Router:
    """
    HTTP request router with explicit routes and one fallback route.

        router = Router()
        router.add_route("/", serve_root)
        router.fallback(serve_tree)

        response = router.handle(request)
    """

    def __init__(self):
        self._routes: List[Route] = []
        self._fallback: Optional[Route] = None

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: Handler,
        methods: Iterable[str] = READ_METHODS,
    ) -> Route:
        """
        Register an explicit route.

        Args:
            path: Exact URL path (e.g. "/" or "/metrics")
            handler: Callable taking a request and returning a response
            methods: Methods this route answers

        Returns:
            The registered Route
        """
        route = self._make_route(path, handler, methods)
        self._routes.append(route)
        return route

    def fallback(
        self,
        handler: Handler,
        methods: Iterable[str] = READ_METHODS,
    ) -> Route:
        """
        Register the catch-all route, tried after every explicit route.

        Registering a second fallback replaces the first.
        """
        self._fallback = self._make_route(FALLBACK_PATTERN, handler, methods)
        return self._fallback

    def _make_route(
        self,
        path: str,
        handler: Handler,
        methods: Iterable[str],
    ) -> Route:
        return Route(
            path=path,
            methods=tuple(m.upper() for m in methods),
            handler=handler,
        )

    # =========================================================================
    # MATCHING
    # =========================================================================

    def _candidates(self) -> List[Route]:
        """Routes in matching order: explicit ones, then the fallback."""
        if self._fallback is None:
            return self._routes
        return self._routes + [self._fallback]

    def match_path(self, path: str) -> Optional[Route]:
        """First route whose pattern matches the path, ignoring methods."""
        for route in self._candidates():
            if route.matches_path(path):
                return route
        return None

    def match(self, method: str, path: str) -> Optional[Route]:
        """
        Find the route that answers this method and path.

        Explicit routes are tried first, in registration order, then the
        fallback.
        """
        method = method.upper()

        for route in self._candidates():
            if method in route.methods and route.matches_path(path):
                return route

        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods any route matching the path answers, for the Allow header."""
        methods = set()
        for route in self._candidates():
            if route.matches_path(path):
                methods.update(route.methods)
        return sorted(methods)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route a request to its handler.

        Sets request.route_pattern. A path that matches only under other
        methods answers 405 with Allow; a path nothing matches answers 404.
        """
        found = self.match(request.method, request.path)

        if found is not None:
            request.route_pattern = found.path
            return found.handler(request)

        route = self.match_path(request.path)
        if route is not None:
            request.route_pattern = route.path
            return method_not_allowed(self.get_allowed_methods(request.path))

        return error_response(HTTPStatus.NOT_FOUND)
