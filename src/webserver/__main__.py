"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    python -m webserver
    webserver                       # console script

All configuration comes from the environment (see config.py); the only
flag is --version.

    WEBSERVER_DIR=./site WEBSERVER_PORT=3000 WEBSERVER_METRICS=false webserver

Exit status: 0 after a clean drain, 1 if the signal handlers can't be
installed.

=============================================================================
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig
from .errors import SignalHandlerError
from .lifecycle import Coordinator
from .log import setup_logging


logger = logging.getLogger("webserver")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="webserver",
        description="Static website server with an optional metrics listener",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  WEBSERVER_ADDR, WEBSERVER_PORT     site listener (default 0.0.0.0:8080)
  WEBSERVER_DIR, WEBSERVER_404       root directory and not-found page
  WEBSERVER_TIMEOUT                  request timeout in ms (0 = off)
  WEBSERVER_METRICS                  metrics listener on/off (default true)
  METRICS_ADDR, METRICS_PORT         metrics listener (default 0.0.0.0:8081)
  WEBSERVER_LOG                      log filter, e.g. info,webserver.access=debug
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"webserver {__version__}"
    )

    parser.parse_args(argv)

    config = ServerConfig.from_env()
    setup_logging(config.log_level)

    try:
        Coordinator(config).run()
    except SignalHandlerError as e:
        logger.error(f"{e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
