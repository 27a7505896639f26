"""
Tests for the Coordinator: both listeners, failure isolation, shutdown.
"""

import dataclasses
import signal
import socket
import threading

import pytest

from webserver import Coordinator
from webserver.config import METRICS, SITE
from webserver.errors import ConfigError, SignalHandlerError
from webserver.metrics import CONTENT_TYPE
from webserver.server import ListenerState

from conftest import http_get


def pick_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class RunningCoordinator:
    """Coordinator.run() in a background thread, without signal handlers."""

    def __init__(self, coordinator: Coordinator):
        self.coordinator = coordinator
        self.thread = threading.Thread(
            target=coordinator.run,
            kwargs={"install_signals": False},
            daemon=True,
        )

    def start(self) -> "RunningCoordinator":
        self.thread.start()
        assert self.coordinator.wait_until_started(timeout=5.0)
        return self

    def stop(self):
        self.coordinator.shutdown()
        self.thread.join(10.0)


@pytest.fixture
def coordinated(site_config):
    """Factory: coordinated(**overrides) → started RunningCoordinator."""
    running = []

    def factory(**overrides) -> RunningCoordinator:
        options = {
            "bind_port": pick_port(),
            "metrics_bind_port": pick_port(),
            "metrics_enabled": True,
        }
        options.update(overrides)
        config = dataclasses.replace(site_config, **options)
        instance = RunningCoordinator(Coordinator(config)).start()
        running.append(instance)
        return instance

    yield factory

    for instance in running:
        instance.stop()


class TestCoordinator:
    """Both listeners under one coordinator."""

    def test_site_and_metrics(self, coordinated):
        running = coordinated()
        config = running.coordinator.config

        status, _, body = http_get(config.bind_port, "/")
        assert (status, body) == (200, b"HOME")

        status, headers, body = http_get(config.metrics_bind_port, "/metrics")
        assert status == 200
        assert headers["content-type"] == CONTENT_TYPE
        assert b'http_requests_total{method="GET",path="/",status="200"} 1' in body

    def test_metrics_listener_only_serves_metrics(self, coordinated):
        running = coordinated()

        status, _, _ = http_get(running.coordinator.config.metrics_bind_port, "/")

        assert status == 404

    def test_metrics_requests_are_not_counted(self, coordinated):
        running = coordinated()
        port = running.coordinator.config.metrics_bind_port

        http_get(port, "/metrics")
        _, _, body = http_get(port, "/metrics")

        assert b'path="/metrics"' not in body

    def test_shutdown_stops_everything(self, coordinated):
        running = coordinated()

        running.stop()

        assert not running.thread.is_alive()
        assert all(listener.pool.active_workers == 0 for listener in running.coordinator.listeners.values())

    def test_shutdown_is_idempotent(self, coordinated):
        running = coordinated()

        running.coordinator.shutdown()
        running.coordinator.shutdown()
        running.thread.join(10.0)

        assert not running.thread.is_alive()

    def test_metrics_disabled(self, coordinated):
        running = coordinated(metrics_enabled=False)

        assert running.coordinator.listener_names == [SITE]
        assert list(running.coordinator.listeners) == [SITE]
        assert http_get(running.coordinator.config.bind_port, "/about.html")[2] == b"ABOUT"


class TestFailureIsolation:
    """One listener failing leaves the other running."""

    def test_site_bind_failure(self, coordinated):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            taken = blocker.getsockname()[1]

            running = coordinated(bind_port=taken)

            assert SITE not in running.coordinator.listeners
            status, _, _ = http_get(running.coordinator.config.metrics_bind_port, "/metrics")
            assert status == 200

    def test_metrics_config_error(self, coordinated):
        running = coordinated(errors=(ConfigError("invalid IP address syntax: 'nope'", METRICS),))

        assert METRICS not in running.coordinator.listeners
        assert http_get(running.coordinator.config.bind_port, "/")[0] == 200

    def test_missing_root_directory(self, coordinated, tmp_path):
        running = coordinated(root_dir=str(tmp_path / "absent"))

        assert SITE not in running.coordinator.listeners
        assert http_get(running.coordinator.config.metrics_bind_port, "/metrics")[0] == 200

    def test_run_returns_when_every_listener_fails(self, site_config, tmp_path):
        config = dataclasses.replace(
            site_config,
            root_dir=str(tmp_path / "absent"),
            metrics_enabled=False,
        )
        coordinator = Coordinator(config)

        thread = threading.Thread(target=coordinator.run, kwargs={"install_signals": False})
        thread.start()
        thread.join(5.0)

        assert not thread.is_alive()
        assert coordinator.listeners == {}


class TestSignals:
    """Signal handler installation."""

    def test_off_main_thread_fails(self, site_config):
        coordinator = Coordinator(site_config)
        errors = []

        def install():
            try:
                coordinator.install_signal_handlers()
            except SignalHandlerError as e:
                errors.append(e)

        thread = threading.Thread(target=install)
        thread.start()
        thread.join(5.0)

        assert len(errors) == 1

    def test_install_and_restore(self, site_config):
        before = signal.getsignal(signal.SIGTERM)
        coordinator = Coordinator(site_config)

        coordinator.install_signal_handlers()
        try:
            assert signal.getsignal(signal.SIGTERM) is not before
        finally:
            coordinator.restore_signal_handlers()

        assert signal.getsignal(signal.SIGTERM) is before

    @pytest.mark.parametrize("signum", [signal.SIGINT, signal.SIGTERM])
    def test_signal_drains_both_listeners(self, site_config, signum):
        config = dataclasses.replace(
            site_config,
            bind_port=pick_port(),
            metrics_bind_port=pick_port(),
            metrics_enabled=True,
        )
        coordinator = Coordinator(config)
        before = signal.getsignal(signum)
        served = []
        expired = []

        def give_up():
            expired.append(True)
            coordinator.shutdown()

        def deliver():
            if coordinator.wait_until_started(timeout=5.0):
                served.append(http_get(config.bind_port, "/"))
            signal.raise_signal(signum)

        sender = threading.Thread(target=deliver, daemon=True)
        watchdog = threading.Timer(15.0, give_up)
        sender.start()
        watchdog.start()
        try:
            coordinator.run()
        finally:
            watchdog.cancel()
        sender.join(5.0)

        assert not expired
        assert served and served[0][0] == 200
        assert coordinator.shutdown_event.is_set()
        assert set(coordinator.listeners) == {SITE, METRICS}
        for listener in coordinator.listeners.values():
            assert listener.state is ListenerState.STOPPED
        assert signal.getsignal(signum) is before
