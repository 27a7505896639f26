"""
=============================================================================
PATH RESOLVER
=============================================================================

Decides which file on disk answers a request path. Pure decision logic:
the only side effects are read-only stat calls.

=============================================================================
RESOLUTION ORDER
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    resolve(path, root, not_found)                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. path == "/"                 → FILE  root/index.html             │
    │                                   (no existence check)              │
    │                                                                      │
    │  2. any ".." segment            → NOT_FOUND                         │
    │                                                                      │
    │  3. root/path is a regular file → FILE  root/path                   │
    │                                                                      │
    │  4. root/path is a directory    → FILE  root/path/index.html        │
    │     containing index.html                                           │
    │                                                                      │
    │  5. anything else               → NOT_FOUND  root/not_found_file    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PATH TRAVERSAL
=============================================================================

    GET /../etc/passwd           ".." segment            → NOT_FOUND
    GET /%2e%2e/etc/passwd       decoded by the parser   → NOT_FOUND
    GET /link-to-etc/passwd      symlink leaving root    → NOT_FOUND

Rejecting ".." segments catches the textual attack. The candidate is
then resolved (following symlinks) and must still lie inside the
resolved root, so a link pointing out of the tree is not followed.
A traversal attempt is never an error: it gets the not-found page.

=============================================================================
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union
import logging
import os


logger = logging.getLogger(__name__)

INDEX_FILE = "index.html"


class TargetKind(Enum):
    """What a request path resolved to."""
    FILE = "file"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ResolvedTarget:
    """
    Result of resolving one request path.

    For FILE, `path` is the file to serve with status 200. For
    NOT_FOUND, `path` is the not-found substitute, served with 404.
    """

    kind: TargetKind
    path: Path

    @classmethod
    def file(cls, path: Path) -> "ResolvedTarget":
        return cls(TargetKind.FILE, path)

    @classmethod
    def not_found(cls, path: Path) -> "ResolvedTarget":
        return cls(TargetKind.NOT_FOUND, path)

    @property
    def is_found(self) -> bool:
        return self.kind is TargetKind.FILE


def resolve(
    request_path: str,
    root_dir: Union[str, Path],
    not_found_file: str,
) -> ResolvedTarget:
    """
    Resolve a request path against the root directory.

    Args:
        request_path: Decoded URL path, starting with "/".
        root_dir: Directory tree exposed over HTTP.
        not_found_file: Not-found page, relative to root_dir.

    Returns:
        ResolvedTarget. Never a path outside root_dir (except the
        operator-configured not-found file itself).
    """
    root = Path(root_dir).resolve()
    missing = ResolvedTarget.not_found(root / not_found_file)

    if request_path == "/":
        return ResolvedTarget.file(root / INDEX_FILE)

    segments = request_path.split("/")
    if ".." in segments:
        logger.debug(f"Rejected traversal attempt: {request_path}")
        return missing

    parts = [s for s in segments if s not in ("", ".")]
    candidate = root.joinpath(*parts)

    if not _inside(candidate, root):
        logger.debug(f"Rejected path leaving root: {request_path}")
        return missing

    wants_directory = request_path.endswith("/")

    # os.path checks answer False on any OSError (ENAMETOOLONG included)
    if os.path.isfile(candidate) and not wants_directory:
        return ResolvedTarget.file(candidate)

    if os.path.isdir(candidate):
        index = candidate / INDEX_FILE
        if _inside(index, root) and os.path.isfile(index):
            return ResolvedTarget.file(index)

    return missing


def _inside(path: Path, root: Path) -> bool:
    """Check that a path, after following symlinks, stays under root."""
    try:
        real: Optional[Path] = path.resolve()
    except (OSError, RuntimeError):
        return False
    return real == root or real.is_relative_to(root)
