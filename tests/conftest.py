"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

from webserver import HTTPServer, ServerConfig
from webserver.http import FileStream, HTTPRequest, HTTPResponse
from webserver.metrics import PrometheusRecorder
from webserver.server import build_site_app


@pytest.fixture
def public_dir(tmp_path: Path) -> Path:
    """
    A small site:

        public/
        ├── index.html         HOME
        ├── about.html         ABOUT
        ├── 404.html           MISSING
        ├── style.css
        └── docs/
            ├── index.html     DOCS
            └── guide.txt      GUIDE
    """
    root = tmp_path / "public"
    root.mkdir()
    (root / "index.html").write_text("HOME")
    (root / "about.html").write_text("ABOUT")
    (root / "404.html").write_text("MISSING")
    (root / "style.css").write_text("body { color: red; }")

    docs = root / "docs"
    docs.mkdir()
    (docs / "index.html").write_text("DOCS")
    (docs / "guide.txt").write_text("GUIDE")

    return root


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def site_config(public_dir: Path) -> ServerConfig:
    """Configuration for a site listener on 127.0.0.1."""
    return ServerConfig(
        root_dir=str(public_dir),
        bind_address="127.0.0.1",
        metrics_bind_address="127.0.0.1",
        min_workers=2,
        max_workers=8,
        read_timeout=5.0,
        keep_alive_timeout=1.0,
    )


@pytest.fixture
def recorder() -> PrometheusRecorder:
    return PrometheusRecorder()


def make_request(method: str, path: str, headers: Optional[dict] = None) -> HTTPRequest:
    """Helper to create a request for testing."""
    return HTTPRequest(method=method, path=path, headers=headers or {})


class SlowStream(FileStream):
    """A FileStream that sleeps before every chunk."""

    def __init__(self, path, delay: float, chunk_size: int = 1):
        super().__init__(path, chunk_size=chunk_size)
        self.delay = delay

    def __iter__(self):
        for chunk in super().__iter__():
            time.sleep(self.delay)
            yield chunk


# =============================================================================
# BACKGROUND LISTENER
# =============================================================================

class RunningListener:
    """An HTTPServer serving in a background thread on an OS-picked port."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self.shutdown_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.server_address[1]

    def start(self) -> "RunningListener":
        self.server.bind("127.0.0.1", 0)
        self._thread = threading.Thread(
            target=self.server.serve,
            args=(self.shutdown_event,),
            daemon=True,
        )
        self._thread.start()

        if not self.server.wait_until_serving(timeout=5.0):
            raise RuntimeError("Listener failed to start")
        return self

    def stop(self, timeout: float = 10.0):
        self.shutdown_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    @property
    def stopped(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()


@pytest.fixture
def start_listener() -> Generator[Callable[..., RunningListener], None, None]:
    """Factory: start_listener(handler, config) → RunningListener."""
    running = []

    def factory(
        handler: Callable[[HTTPRequest], HTTPResponse],
        config: Optional[ServerConfig] = None,
        name: str = "site",
    ) -> RunningListener:
        listener = RunningListener(HTTPServer(name, handler, config)).start()
        running.append(listener)
        return listener

    yield factory

    for listener in running:
        listener.stop()


@pytest.fixture
def site(start_listener, site_config: ServerConfig, recorder: PrometheusRecorder) -> RunningListener:
    """The site app, instrumented, serving public_dir."""
    return start_listener(build_site_app(site_config, recorder), site_config)


# =============================================================================
# RAW HTTP CLIENT
# =============================================================================

def send_raw(port: int, data: bytes, timeout: float = 5.0) -> bytes:
    """Send raw bytes and read until the server closes the connection."""
    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as sock:
        sock.sendall(data)
        chunks = []
        while True:
            chunk = sock.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def http_get(port: int, path: str, method: str = "GET", headers: Optional[dict] = None):
    """
    One request on its own connection (Connection: close).

    Returns:
        (status, headers with lowercase names, body)
    """
    lines = [f"{method} {path} HTTP/1.1", "Host: localhost", "Connection: close"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}")
    raw = send_raw(port, ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1"))
    return parse_response(raw)


def parse_response(raw: bytes):
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    status = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return status, headers, body


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()
