"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket: buffered request reading, response
writing (streamed file bodies included) and a clean TCP close.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

TCP does not preserve message boundaries. One request may arrive in
several recv() calls, or two pipelined requests in one:

    recv() → "GET /about.ht"
    recv() → "ml HTTP/1.1\r\nHost: x\r\n\r\nGET / HTTP/1.1\r\n..."

So we buffer, look for the \r\n\r\n that ends the headers, read
Content-Length body bytes, and keep any leftover bytes for the next
request on the same connection.

=============================================================================
TIMEOUTS
=============================================================================

    first request      read_timeout (30s)       → TimeoutError → 408
    keep-alive wait    keep_alive_timeout (5s)  → None, close quietly
    draining           stop event set           → None, close quietly
    response deadline  request_timeout_ms       → 408, or body cut short

While waiting idle between keep-alive requests the socket is polled in
short slices, so a listener that starts draining doesn't sit behind
idle connections for the full keep-alive timeout.

=============================================================================
"""

import contextlib
import logging
import re
import select
import socket
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..http.response import HTTPResponse, StreamTimeout, request_timeout


logger = logging.getLogger(__name__)

IDLE_POLL_INTERVAL = 0.25
LINGER_TIMEOUT = 0.5

_CONTENT_LENGTH = re.compile(
    rb"^content-length:[ \t]*([0-9]+)[ \t]*\r?$",
    re.IGNORECASE | re.MULTILINE,
)


class RequestTooLarge(ValueError):
    """The buffered request grew past max_request_size."""


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    One accepted client socket.

    stop_event is the listener's shutdown event. Once it is set, idle
    keep-alive waits end and the worker closes the connection.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024
    stop_event: Optional[threading.Event] = None

    _buffer: bytearray = field(default_factory=bytearray, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    @property
    def stopping(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request from the socket.

        Returns:
            The request bytes, or None if the client closed the
            connection, the keep-alive wait expired, or the listener is
            draining.

        Raises:
            TimeoutError: The first request didn't arrive in time.
            RequestTooLarge: The request exceeds max_request_size.
        """
        self.state = ConnectionState.READING
        idle = self.requests_handled > 0

        if idle and not self._buffer and not self._wait_for_next_request():
            return None

        try:
            length = frame_length(self._buffer)
            while length is None or len(self._buffer) < length:
                chunk = self._recv()
                if not chunk:
                    if length is None:
                        return None
                    break
                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise RequestTooLarge(f"Request too large: {len(self._buffer)} bytes")
                if length is None:
                    length = frame_length(self._buffer)
        except socket.timeout:
            if idle:
                logger.debug(f"[{self.id}] Idle keep-alive connection timed out")
                return None
            raise TimeoutError("Request read timeout") from None

        request = bytes(self._buffer[:length])
        del self._buffer[:length]

        self.requests_handled += 1
        return request

    def _wait_for_next_request(self) -> bool:
        """Wait idle for the next keep-alive request, polling the stop event."""
        deadline = time.monotonic() + self.keep_alive_timeout

        while not self.stopping:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.debug(f"[{self.id}] Idle keep-alive connection timed out")
                return False
            try:
                readable, _, _ = select.select(
                    [self.socket], [], [], min(remaining, IDLE_POLL_INTERVAL)
                )
            except (OSError, ValueError):
                return False
            if readable:
                return True

        return False

    def _recv(self) -> bytes:
        """recv() that treats an abrupt disconnect as end of stream."""
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(
        self,
        response: HTTPResponse,
        server_name: str,
        head_only: bool = False,
    ) -> bool:
        """
        Write a response, streaming a file body chunk by chunk.

        The response's stream is always closed afterwards. A stream whose
        deadline passed before anything was written is swapped for a 408;
        one that passes it mid-body is abandoned.

        Args:
            response: The response to send.
            server_name: Value of the Server header.
            head_only: Send the headers only (HEAD requests).

        Returns:
            True if everything was sent. False if the client went away or
            the response timed out; the connection must then be closed.
        """
        self.state = ConnectionState.WRITING
        completed = True

        if response.stream is not None and response.stream.expired:
            logger.warning(f"[{self.id}] Deadline passed before the response started")
            response.close()
            response = request_timeout()
            response.headers["Connection"] = "close"
            completed = False

        try:
            self.socket.sendall(response.head_bytes(server_name))

            if head_only or not response.status.has_body:
                return completed

            if response.stream is not None:
                for chunk in response.stream:
                    self.socket.sendall(chunk)
            elif response.body:
                self.socket.sendall(response.body)

            return completed

        except StreamTimeout as e:
            logger.warning(f"[{self.id}] Transfer cut short: {e}")
            return False

        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

        finally:
            response.close()

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Half-close, drain, release.

            shutdown(SHUT_WR)   FIN: the client sees the end of the response
            recv until EOF      so unread client bytes don't turn into a RST
            close()
        """
        if self.state == ConnectionState.CLOSED:
            return

        with contextlib.suppress(OSError):
            self.socket.shutdown(socket.SHUT_WR)
            self.socket.settimeout(LINGER_TIMEOUT)
            while self.socket.recv(1024):
                pass

        self.socket.close()
        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] closed after {self.requests_handled} request(s)")

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def frame_length(buffer: bytes) -> Optional[int]:
    """
    Length of the first request in buffer, or None while its head is
    still incomplete. A missing or unreadable Content-Length counts as 0;
    the parser rejects it later.
    """
    header_end = buffer.find(b"\r\n\r\n")
    if header_end == -1:
        return None

    match = _CONTENT_LENGTH.search(bytes(buffer[:header_end]))
    body_length = int(match.group(1)) if match else 0
    return header_end + 4 + body_length
