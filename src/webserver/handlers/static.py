"""
=============================================================================
STATIC RESPONDER
=============================================================================

Turns a ResolvedTarget into an HTTP response whose body streams the file.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    TARGET → RESPONSE                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   FILE(path)          200 OK, body = path                           │
    │                       304 Not Modified if If-None-Match == ETag     │
    │                                                                      │
    │   NOT_FOUND(path)     404 Not Found, body = the not-found page      │
    │                       (a normal HTML page, but status 404)          │
    │                                                                      │
    │   file can't be       ServeError → the listener answers 500         │
    │   opened                                                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Two entry points are registered on the site router:

    serve_root   "/"       always index.html, no directory-index logic and
                           no not-found substitution: a missing index.html
                           is a ServeError, not the 404 page
    serve_tree   "/*path"  full resolver logic

=============================================================================
"""

from pathlib import Path
from typing import Union
import logging

from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse, ResponseBuilder, FileStream, not_modified
)
from ..http.status_codes import HTTPStatus
from .resolver import INDEX_FILE, ResolvedTarget, resolve


logger = logging.getLogger(__name__)


class StaticResponder:
    """
    Serves files from a root directory with a custom not-found page.

    Usage:
        static = StaticResponder("public", "404.html")

        router.add_route("/", static.serve_root)
        router.fallback(static.serve_tree)
    """

    def __init__(self, root_dir: Union[str, Path], not_found_file: str = "404.html"):
        self.root_dir = Path(root_dir).resolve()
        self.not_found_file = not_found_file

    @property
    def index_path(self) -> Path:
        return self.root_dir / INDEX_FILE

    @property
    def not_found_path(self) -> Path:
        return self.root_dir / self.not_found_file

    def serve_root(self, request: HTTPRequest) -> HTTPResponse:
        """Serve root_dir/index.html for "/"."""
        return self.respond(ResolvedTarget.file(self.index_path), request)

    def serve_tree(self, request: HTTPRequest) -> HTTPResponse:
        """Serve any path through the resolver."""
        target = resolve(request.path, self.root_dir, self.not_found_file)
        return self.respond(target, request)

    def respond(self, target: ResolvedTarget, request: HTTPRequest) -> HTTPResponse:
        """
        Open the target and build the response.

        Raises:
            ServeError: The target file can't be opened.
        """
        status = HTTPStatus.OK if target.is_found else HTTPStatus.NOT_FOUND
        stream = FileStream(target.path)

        response = (ResponseBuilder()
            .status(status)
            .file(stream)
            .build())

        if status == HTTPStatus.OK and _etag_matches(request, response.headers["ETag"]):
            response.close()
            return not_modified(response.headers)

        return response


def _etag_matches(request: HTTPRequest, etag: str) -> bool:
    """Evaluate If-None-Match against our ETag ("*" matches anything)."""
    header = request.get_header("If-None-Match")
    if not header:
        return False

    candidates = [value.strip() for value in header.split(",")]
    return "*" in candidates or etag in candidates
