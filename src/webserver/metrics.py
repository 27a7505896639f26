"""
=============================================================================
REQUEST METRICS
=============================================================================

One RequestObservation is produced per request by the instrumentation
middleware and handed to a MetricsRecorder:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        METRICS FLOW                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   site listener                          metrics listener           │
    │   ─────────────                          ────────────────           │
    │   InstrumentationMiddleware              GET /metrics               │
    │        │                                      │                     │
    │        │ record(observation)                  │ render()            │
    │        ▼                                      ▼                     │
    │   ┌───────────────────────────────────────────────────────────┐     │
    │   │  PrometheusRecorder  (one per process, internal lock)     │     │
    │   │                                                           │     │
    │   │   http_requests_total{method,path,status}     counter     │     │
    │   │   http_requests_duration_seconds{...}         histogram   │     │
    │   └───────────────────────────────────────────────────────────┘     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

With metrics disabled the site listener gets a NoopRecorder and the
rest of the code is identical.

=============================================================================
EXPOSITION FORMAT (text 0.0.4)
=============================================================================

    # TYPE http_requests_total counter
    http_requests_total{method="GET",path="/",status="200"} 3
    # TYPE http_requests_duration_seconds histogram
    http_requests_duration_seconds_bucket{method="GET",path="/",status="200",le="0.005"} 3
    ...
    http_requests_duration_seconds_bucket{method="GET",path="/",status="200",le="+Inf"} 3
    http_requests_duration_seconds_sum{method="GET",path="/",status="200"} 0.0021
    http_requests_duration_seconds_count{method="GET",path="/",status="200"} 3

=============================================================================
"""

from abc import ABC, abstractmethod
from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Dict, List, Tuple
import threading


CONTENT_TYPE = "text/plain; version=0.0.4"

REQUESTS_TOTAL = "http_requests_total"
REQUEST_DURATION = "http_requests_duration_seconds"

DURATION_BUCKETS: Tuple[float, ...] = (
    0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0,
)

LabelKey = Tuple[str, str, str]


@dataclass(frozen=True)
class RequestObservation:
    """What one finished request looked like."""

    method: str
    path: str
    status: int
    latency_seconds: float

    @property
    def labels(self) -> LabelKey:
        return (self.method, self.path, str(self.status))


class MetricsRecorder(ABC):
    """Sink for request observations."""

    @abstractmethod
    def record(self, observation: RequestObservation) -> None:
        """Aggregate one observation. Safe to call from any thread."""

    @abstractmethod
    def render(self) -> str:
        """Current state in Prometheus text format."""

    @property
    def enabled(self) -> bool:
        return True


class NoopRecorder(MetricsRecorder):
    """Recorder used when the metrics listener is disabled."""

    def record(self, observation: RequestObservation) -> None:
        pass

    def render(self) -> str:
        return ""

    @property
    def enabled(self) -> bool:
        return False


@dataclass
class _Histogram:
    bucket_counts: List[int]
    total: float = 0.0
    count: int = 0

    def observe(self, value: float, bounds: Tuple[float, ...]):
        # bucket i counts values <= bounds[i]; cumulated at render time
        index = bisect_left(bounds, value)
        if index < len(bounds):
            self.bucket_counts[index] += 1
        self.total += value
        self.count += 1


@dataclass
class PrometheusRecorder(MetricsRecorder):
    """
    In-process counter and histogram, rendered as Prometheus text.

    Updates and renders take the recorder's own lock, so concurrent
    increments never lose updates. A render sees a consistent snapshot.
    """

    buckets: Tuple[float, ...] = DURATION_BUCKETS
    _counts: Dict[LabelKey, int] = field(default_factory=dict, repr=False)
    _histograms: Dict[LabelKey, _Histogram] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, observation: RequestObservation) -> None:
        key = observation.labels
        with self._lock:
            self._counts[key] = self._counts.get(key, 0) + 1
            histogram = self._histograms.get(key)
            if histogram is None:
                histogram = _Histogram(bucket_counts=[0] * len(self.buckets))
                self._histograms[key] = histogram
            histogram.observe(observation.latency_seconds, self.buckets)

    def count(self, method: str, path: str, status: int) -> int:
        """Value of http_requests_total for one label set."""
        with self._lock:
            return self._counts.get((method, path, str(status)), 0)

    def render(self) -> str:
        with self._lock:
            counts = sorted(self._counts.items())
            histograms = sorted(
                (key, _Histogram(list(h.bucket_counts), h.total, h.count))
                for key, h in self._histograms.items()
            )

        lines = [f"# TYPE {REQUESTS_TOTAL} counter"]
        for key, value in counts:
            lines.append(f"{REQUESTS_TOTAL}{{{_labels(key)}}} {value}")

        lines.append(f"# TYPE {REQUEST_DURATION} histogram")
        for key, histogram in histograms:
            labels = _labels(key)
            cumulative = 0
            for bound, hits in zip(self.buckets, histogram.bucket_counts):
                cumulative += hits
                lines.append(
                    f'{REQUEST_DURATION}_bucket{{{labels},le="{_format_float(bound)}"}} {cumulative}'
                )
            lines.append(f'{REQUEST_DURATION}_bucket{{{labels},le="+Inf"}} {histogram.count}')
            lines.append(f"{REQUEST_DURATION}_sum{{{labels}}} {_format_float(histogram.total)}")
            lines.append(f"{REQUEST_DURATION}_count{{{labels}}} {histogram.count}")

        return "\n".join(lines) + "\n"


def _labels(key: LabelKey) -> str:
    method, path, status = key
    return f'method="{_escape(method)}",path="{_escape(path)}",status="{status}"'


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_float(value: float) -> str:
    return repr(float(value))
