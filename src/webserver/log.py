"""
Logging setup driven by an env-filter string.

The filter is a comma-separated list of directives. A bare level sets
the global level; `target=level` sets the level of one logger:

    warn                              everything at WARNING and above
    info,webserver.access=debug       INFO globally, access log at DEBUG
    error,tower_http=info             tower_http is an alias of the access log

Levels: trace, debug, info, warn/warning, error, off (case-insensitive).
A filter that can't be parsed falls back to "warn".
"""

import logging
from typing import Dict, Optional, Tuple


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

FALLBACK_LEVEL = logging.WARNING

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": logging.CRITICAL + 10,
}

_TARGET_ALIASES = {
    "tower_http": "webserver.access",
}


def parse_filter(filter_string: Optional[str]) -> Tuple[int, Dict[str, int]]:
    """
    Parse an env-filter string.

    Args:
        filter_string: Filter string such as "info,webserver.access=debug".

    Returns:
        Tuple of (global level, {logger name: level}).

    Raises:
        ValueError: A directive names an unknown level.
    """
    level = FALLBACK_LEVEL
    targets: Dict[str, int] = {}

    for directive in (filter_string or "").split(","):
        directive = directive.strip()
        if not directive:
            continue

        if "=" in directive:
            target, _, name = directive.partition("=")
            target = target.strip()
            if not target or name.strip().lower() not in _LEVELS:
                raise ValueError(f"invalid log directive: {directive!r}")
            targets[_TARGET_ALIASES.get(target, target)] = _LEVELS[name.strip().lower()]
        elif directive.lower() in _LEVELS:
            level = _LEVELS[directive.lower()]
        else:
            raise ValueError(f"invalid log level: {directive!r}")

    return level, targets


def setup_logging(filter_string: Optional[str]) -> int:
    """
    Configure the root logger from an env-filter string.

    Args:
        filter_string: Filter string (WEBSERVER_LOG).

    Returns:
        The global level that was applied.
    """
    error = None
    try:
        level, targets = parse_filter(filter_string)
    except ValueError as e:
        level, targets, error = FALLBACK_LEVEL, {}, e

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    logging.getLogger().setLevel(level)
    logging.getLogger("webserver").setLevel(level)

    for name, target_level in targets.items():
        logging.getLogger(name).setLevel(target_level)

    if error is not None:
        logging.getLogger(__name__).warning(f"{error}; falling back to \"warn\"")

    return level
