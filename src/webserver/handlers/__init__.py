"""
=============================================================================
REQUEST HANDLERS
=============================================================================

    resolver.py   request path → ResolvedTarget (FILE or NOT_FOUND)
    static.py     StaticResponder: ResolvedTarget → streamed response
    metrics.py    MetricsHandler: GET /metrics on the metrics listener

=============================================================================
"""

from .resolver import ResolvedTarget, TargetKind, resolve
from .static import StaticResponder
from .metrics import MetricsHandler

__all__ = [
    "ResolvedTarget",
    "TargetKind",
    "resolve",
    "StaticResponder",
    "MetricsHandler",
]
