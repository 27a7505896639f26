"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All configuration comes from environment variables. It is read exactly
once at process start into an immutable ServerConfig, which is then
handed to every component explicitly.

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================

The variable names are derived from a single application name token.
For APP_NAME = "webserver" the prefix is WEBSERVER:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  VARIABLE              MEANING                         DEFAULT      │
    ├─────────────────────────────────────────────────────────────────────┤
    │  WEBSERVER_LOG         log filter (env-filter syntax)  warn         │
    │  WEBSERVER_ADDR        site bind IP                    0.0.0.0      │
    │  WEBSERVER_PORT        site bind port                  8080         │
    │  WEBSERVER_DIR         root directory                  public       │
    │  WEBSERVER_404         not-found page (in DIR)         404.html     │
    │  WEBSERVER_TIMEOUT     request timeout in ms (0 = off) 0            │
    │  WEBSERVER_METRICS     metrics listener on/off         true         │
    │  WEBSERVER_WORKERS     max worker threads              16           │
    │  WEBSERVER_LOG_FORMAT  access log format (text/json)   text         │
    │  METRICS_ADDR          metrics bind IP                 0.0.0.0      │
    │  METRICS_PORT          metrics bind port               8081         │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PER-LISTENER ERRORS
=============================================================================

Parsing never raises. A bad value is recorded as a ConfigError tagged
with the listener it belongs to, and the field keeps its default:

    WEBSERVER_PORT=http      →  ConfigError(listener="site")
    METRICS_PORT=99999       →  ConfigError(listener="metrics")

When the coordinator asks for a listener's settings with
config.listener("site"), the first recorded error for that listener is
raised. A broken site configuration therefore never stops the metrics
listener from coming up, and vice versa.

=============================================================================
"""

import ipaddress
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple

from .errors import ConfigError


APP_NAME = "webserver"

SITE = "site"
METRICS = "metrics"

DEFAULT_LOG_FILTER = "warn,webserver.access=warn"

PORT_ERROR = "port must be a positive integer (u16)"
TIMEOUT_ERROR = "timeout must be a positive integer (u64)"

_DIGITS = re.compile(r"[0-9]+")
_U16_MAX = 2 ** 16 - 1
_U64_MAX = 2 ** 64 - 1


@dataclass(frozen=True)
class EnvNames:
    """Environment variable names for one application name token."""

    log: str
    addr: str
    port: str
    dir: str
    not_found: str
    timeout: str
    metrics: str
    workers: str
    log_format: str
    metrics_addr: str = "METRICS_ADDR"
    metrics_port: str = "METRICS_PORT"

    @classmethod
    def for_app(cls, app_name: str = APP_NAME) -> "EnvNames":
        prefix = app_name.upper()
        return cls(
            log=f"{prefix}_LOG",
            addr=f"{prefix}_ADDR",
            port=f"{prefix}_PORT",
            dir=f"{prefix}_DIR",
            not_found=f"{prefix}_404",
            timeout=f"{prefix}_TIMEOUT",
            metrics=f"{prefix}_METRICS",
            workers=f"{prefix}_WORKERS",
            log_format=f"{prefix}_LOG_FORMAT",
        )


@dataclass(frozen=True)
class ListenerConfig:
    """Validated bind settings for one listener."""

    name: str
    host: str
    port: int

    @property
    def address(self) -> Tuple[str, int]:
        return (self.host, self.port)


@dataclass(frozen=True)
class ServerConfig:
    """
    Immutable configuration for the whole process.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    SITE          root_dir, not_found_file, bind_address, bind_port,
                  request_timeout_ms
    METRICS       metrics_enabled, metrics_bind_address, metrics_bind_port
    LOGGING       log_level, log_format
    TUNING        backlog, buffer_size, read_timeout, keep_alive,
                  keep_alive_timeout, max_request_size, min_workers,
                  max_workers, server_name

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # SITE
    # ─────────────────────────────────────────────────────────────────────

    root_dir: str = "public"
    """Directory tree exposed over HTTP."""

    not_found_file: str = "404.html"
    """Page served with status 404, relative to root_dir."""

    bind_address: str = "0.0.0.0"
    bind_port: int = 8080

    request_timeout_ms: int = 0
    """Per-request timeout in milliseconds. 0 disables it."""

    # ─────────────────────────────────────────────────────────────────────
    # METRICS
    # ─────────────────────────────────────────────────────────────────────

    metrics_enabled: bool = True
    metrics_bind_address: str = "0.0.0.0"
    metrics_bind_port: int = 8081

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = DEFAULT_LOG_FILTER
    """
    Env-filter string, e.g. "info" or "warn,webserver.access=info".
    See log.py for the syntax.
    """

    log_format: str = "text"
    """Access log format: 'text' (Apache-like) or 'json'."""

    # ─────────────────────────────────────────────────────────────────────
    # TUNING
    # ─────────────────────────────────────────────────────────────────────

    backlog: int = 128
    buffer_size: int = 8192

    read_timeout: Optional[float] = 30.0
    """Seconds to wait for a client to send a complete request."""

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024
    min_workers: int = 4
    max_workers: int = 16
    server_name: str = "webserver/0.2.0"

    errors: Tuple[ConfigError, ...] = field(default=(), compare=False)
    """Parse errors collected by from_env(), tagged per listener."""

    # =========================================================================
    # DERIVED VALUES
    # =========================================================================

    @property
    def request_timeout(self) -> float:
        """Request timeout in seconds (0.0 when disabled)."""
        return self.request_timeout_ms / 1000.0

    @property
    def index_path(self) -> Path:
        return Path(self.root_dir) / "index.html"

    @property
    def not_found_path(self) -> Path:
        return Path(self.root_dir) / self.not_found_file

    # =========================================================================
    # LOADING
    # =========================================================================

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        app_name: str = APP_NAME,
    ) -> "ServerConfig":
        """
        Build the configuration from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.
            app_name: Name token the variable prefix is derived from.

        Returns:
            A ServerConfig. Invalid values are recorded in `errors`.
        """
        env = os.environ if environ is None else environ
        names = EnvNames.for_app(app_name)
        errors: list[ConfigError] = []

        def address(name: str, default: str, listener: str) -> str:
            raw = env.get(name)
            if raw is None:
                return default
            try:
                ipaddress.ip_address(raw)
            except ValueError:
                errors.append(ConfigError(f"invalid IP address syntax: '{raw}'", listener))
                return default
            return raw

        def integer(name: str, default: int, limit: int, message: str, listener: str) -> int:
            raw = env.get(name)
            if raw is None:
                return default
            if not _DIGITS.fullmatch(raw) or int(raw) > limit:
                errors.append(ConfigError(f"{name}: {message}", listener))
                return default
            return int(raw)

        workers = integer(names.workers, cls.max_workers, _U16_MAX,
                          "workers must be a positive integer", SITE)
        if workers < 1:
            errors.append(ConfigError(f"{names.workers}: workers must be >= 1", SITE))
            workers = cls.max_workers

        log_format = env.get(names.log_format, "text").lower()
        if log_format not in ("text", "json"):
            log_format = "text"

        return cls(
            root_dir=env.get(names.dir, cls.root_dir),
            not_found_file=env.get(names.not_found, cls.not_found_file),
            bind_address=address(names.addr, cls.bind_address, SITE),
            bind_port=integer(names.port, cls.bind_port, _U16_MAX, PORT_ERROR, SITE),
            request_timeout_ms=integer(names.timeout, 0, _U64_MAX, TIMEOUT_ERROR, SITE),
            metrics_enabled=env.get(names.metrics, "true").lower() in ("true", "1"),
            metrics_bind_address=address(names.metrics_addr, cls.metrics_bind_address, METRICS),
            metrics_bind_port=integer(
                names.metrics_port, cls.metrics_bind_port, _U16_MAX, PORT_ERROR, METRICS
            ),
            log_level=env.get(names.log, DEFAULT_LOG_FILTER),
            log_format=log_format,
            min_workers=min(cls.min_workers, workers),
            max_workers=workers,
            errors=tuple(errors),
        )

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def listener(self, name: str) -> ListenerConfig:
        """
        Get the validated bind settings for a listener.

        Args:
            name: "site" or "metrics".

        Raises:
            ConfigError: The listener's settings are unusable.
        """
        if name == SITE:
            host, port = self.bind_address, self.bind_port
        elif name == METRICS:
            host, port = self.metrics_bind_address, self.metrics_bind_port
        else:
            raise ValueError(f"unknown listener: {name}")

        for error in self.errors:
            if error.listener == name:
                raise error

        try:
            ipaddress.ip_address(host)
        except ValueError:
            raise ConfigError(f"invalid IP address syntax: '{host}'", name) from None

        if not 0 < port <= _U16_MAX:
            raise ConfigError(f"invalid port: {port}. Must be 1-65535.", name)

        return ListenerConfig(name=name, host=host, port=port)

    def check_site(self) -> ListenerConfig:
        """Validate the site listener, including the root directory."""
        listener = self.listener(SITE)
        if not Path(self.root_dir).is_dir():
            raise ConfigError(f"root directory '{self.root_dir}' is not a directory", SITE)
        return listener

    def validate(self) -> None:
        """
        Validate the tuning values.

        Fail-fast for configs built in code rather than from the
        environment.
        """
        if self.min_workers < 1:
            raise ConfigError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ConfigError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ConfigError("buffer_size must be >= 1024")

        if self.request_timeout_ms < 0:
            raise ConfigError(TIMEOUT_ERROR)

        if self.read_timeout is not None and self.read_timeout <= 0:
            raise ConfigError("read_timeout must be > 0")
