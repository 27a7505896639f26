"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

The listening half of a listener: socket creation, bind, listen and the
accept loop. Request handling lives one level up in server.py.

    1. socket()    AF_INET, or AF_INET6 when the host is an IPv6 literal
    2. bind()      reserve host:port (port 0 picks a free one)
    3. listen()    the kernel starts queueing connections
    4. accept()    one new socket per client, wrapped in a Connection
    5. close()     stop accepting; queued-but-unaccepted clients are reset

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:
    Rebind straight after a restart instead of waiting out TIME_WAIT.

TCP_NODELAY:
    Disable Nagle's algorithm. Response heads are small and should
    leave immediately.

SO_REUSEPORT is not set: two listeners configured on the same port must
fail to bind rather than silently share it.

=============================================================================
INTERRUPTIBLE ACCEPT
=============================================================================

accept() has a short timeout so the loop can notice the shutdown event:

    while not stop_event.is_set():
        try:
            accept()          # returns within ACCEPT_POLL_INTERVAL
        except timeout:
            continue          # check the event, loop again

=============================================================================
"""

import logging
import socket
import threading
from typing import Callable, Optional

from .connection import Connection


logger = logging.getLogger(__name__)

ACCEPT_POLL_INTERVAL = 0.25


class SocketServer:
    """
    Low-level TCP socket server for one listener.

    Usage:
        server = SocketServer(name="site")
        server.bind("127.0.0.1", 8080)          # raises OSError
        server.serve(handle_connection, stop_event)
        server.close()
    """

    def __init__(
        self,
        name: str = "site",
        backlog: int = 128,
        connection_options: Optional[dict] = None,
    ):
        """
        Args:
            name: Listener name, used in log lines.
            backlog: listen() queue length.
            connection_options: Keyword arguments for every Connection
                (buffer_size, timeout, keep_alive_timeout, ...).
        """
        self.name = name
        self.backlog = backlog
        self.connection_options = connection_options or {}

        self._socket: Optional[socket.socket] = None

    @property
    def server_address(self) -> tuple[str, int]:
        """The bound (host, port); the real port when bound to port 0."""
        if self._socket is None:
            raise RuntimeError(f"{self.name} listener is not bound")
        address = self._socket.getsockname()
        return (address[0], address[1])

    def _create_socket(self, host: str) -> socket.socket:
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(ACCEPT_POLL_INTERVAL)

        return sock

    def bind(self, host: str, port: int):
        """
        Create the socket, bind and listen.

        Raises:
            OSError: The address is in use, not local, or not permitted.
        """
        sock = self._create_socket(host)

        try:
            sock.bind((host, port))
            sock.listen(self.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind {self.name} listener to {host}:{port}: {e}")
            raise

        self._socket = sock
        logger.debug(f"{self.name} listener bound to {self.server_address}")

    def serve(
        self,
        connection_handler: Callable[[Connection], None],
        stop_event: threading.Event,
    ):
        """
        Accept connections until stop_event is set.

        Each accepted client is wrapped in a Connection and handed to
        connection_handler, which queues it on the listener's pool.
        """
        if self._socket is None:
            raise RuntimeError(f"{self.name} listener is not bound")

        connection_options = dict(self.connection_options)
        connection_options.setdefault("stop_event", stop_event)

        while not stop_event.is_set():
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not stop_event.is_set():
                    logger.error(f"{self.name} accept error: {e}")
                break

            logger.debug(
                f"{self.name}: accepted connection from "
                f"{client_address[0]}:{client_address[1]}"
            )

            conn = Connection(
                socket=client_socket,
                address=(client_address[0], client_address[1]),
                **connection_options,
            )
            connection_handler(conn)

    def close(self):
        """Close the listening socket. Safe to call more than once."""
        if self._socket is None:
            return

        try:
            self._socket.close()
        except OSError as e:
            logger.debug(f"{self.name} listener close: {e}")
        self._socket = None
