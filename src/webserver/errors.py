"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the server knows about falls into one of these buckets:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         ERROR CLASSES                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ConfigError          Bad address, port, timeout or root dir       │
    │                        └── That listener never comes up (logged)     │
    │                                                                      │
    │   OSError              Socket bind failure                          │
    │                        └── That listener never comes up (logged)     │
    │                                                                      │
    │   ServeError           A file that must be served can't be opened   │
    │                        └── One request answers 500 (logged)          │
    │                                                                      │
    │   HTTPParseError       Malformed request (see http/request.py)      │
    │                        └── One request answers 4xx/5xx               │
    │                                                                      │
    │   SignalHandlerError   SIGINT/SIGTERM handler can't be installed    │
    │                        └── Process exits (the only fatal error)      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Nothing in a listener's startup path or a request's handling path is
allowed to take the whole process down.

=============================================================================
"""


class WebServerError(Exception):
    """Base class for all server errors."""


class ConfigError(WebServerError):
    """
    Raised when a listener's configuration is invalid.

    The error remembers which listener it belongs to ("site" or
    "metrics") so the coordinator can drop exactly that listener.
    """

    def __init__(self, message: str, listener: str = "site"):
        super().__init__(message)
        self.listener = listener


class ServeError(WebServerError):
    """
    Raised when a resolved file can't be opened for serving.

    The two interesting cases are a missing root index.html and a
    missing not-found substitute page.
    """

    def __init__(self, path: str, cause: OSError):
        super().__init__(f"failed to serve '{path}': {cause.strerror or cause}")
        self.path = path
        self.cause = cause


class SignalHandlerError(WebServerError):
    """Raised when the SIGINT/SIGTERM handlers can't be installed."""
