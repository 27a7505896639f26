"""
Unit tests for the metrics recorders and the /metrics handler.
"""

import threading

from webserver.handlers import MetricsHandler
from webserver.http import HTTPStatus
from webserver.metrics import (
    CONTENT_TYPE,
    DURATION_BUCKETS,
    NoopRecorder,
    PrometheusRecorder,
    RequestObservation,
)

from conftest import make_request


def observe(recorder, method="GET", path="/", status=200, latency=0.001):
    recorder.record(RequestObservation(method, path, status, latency))


class TestPrometheusRecorder:
    """Tests for PrometheusRecorder."""

    def test_bucket_bounds(self):
        assert DURATION_BUCKETS == (
            0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0,
        )

    def test_counter(self):
        recorder = PrometheusRecorder()
        observe(recorder)
        observe(recorder)
        observe(recorder, path="/*path", status=404)

        assert recorder.count("GET", "/", 200) == 2
        assert recorder.count("GET", "/*path", 404) == 1
        assert recorder.count("HEAD", "/", 200) == 0

    def test_render_counter(self):
        recorder = PrometheusRecorder()
        observe(recorder, path="/*path", status=404)

        text = recorder.render()

        assert "# TYPE http_requests_total counter\n" in text
        assert 'http_requests_total{method="GET",path="/*path",status="404"} 1\n' in text
        assert text.endswith("\n")

    def test_render_histogram(self):
        recorder = PrometheusRecorder()
        observe(recorder, latency=0.003)
        observe(recorder, latency=0.2)
        observe(recorder, latency=30.0)

        text = recorder.render()
        labels = 'method="GET",path="/",status="200"'

        assert "# TYPE http_requests_duration_seconds histogram" in text
        assert f'http_requests_duration_seconds_bucket{{{labels},le="0.005"}} 1' in text
        assert f'http_requests_duration_seconds_bucket{{{labels},le="0.1"}} 1' in text
        assert f'http_requests_duration_seconds_bucket{{{labels},le="0.25"}} 2' in text
        assert f'http_requests_duration_seconds_bucket{{{labels},le="10.0"}} 2' in text
        assert f'http_requests_duration_seconds_bucket{{{labels},le="+Inf"}} 3' in text
        assert f"http_requests_duration_seconds_count{{{labels}}} 3" in text

    def test_bucket_upper_bound_is_inclusive(self):
        recorder = PrometheusRecorder()
        observe(recorder, latency=0.005)

        labels = 'method="GET",path="/",status="200"'
        assert f'_bucket{{{labels},le="0.005"}} 1' in recorder.render()

    def test_label_escaping(self):
        recorder = PrometheusRecorder()
        observe(recorder, path='/say"hi"')

        assert 'path="/say\\"hi\\""' in recorder.render()

    def test_empty_render(self):
        text = PrometheusRecorder().render()

        assert text == (
            "# TYPE http_requests_total counter\n"
            "# TYPE http_requests_duration_seconds histogram\n"
        )

    def test_concurrent_increments(self):
        recorder = PrometheusRecorder()
        threads_count, per_thread = 8, 500

        def worker():
            for _ in range(per_thread):
                observe(recorder, path="/*path")

        threads = [threading.Thread(target=worker) for _ in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert recorder.count("GET", "/*path", 200) == threads_count * per_thread


class TestNoopRecorder:
    """Tests for NoopRecorder."""

    def test_records_nothing(self):
        recorder = NoopRecorder()
        observe(recorder)

        assert recorder.render() == ""
        assert recorder.enabled is False


class TestMetricsHandler:
    """Tests for the exposition endpoint."""

    def test_response(self):
        recorder = PrometheusRecorder()
        observe(recorder)

        response = MetricsHandler(recorder)(make_request("GET", "/metrics"))

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == CONTENT_TYPE
        assert response.headers["Cache-Control"] == "no-store"
        assert b"http_requests_total" in response.body
