"""
Transport statistics.
Tracks request counts, latency, not-modified responses and errors per endpoint.
"""

import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class RequestRecord:
    """Outcome of a single request to the feature server."""
    endpoint: str
    status_code: Optional[int]
    latency_ms: float
    not_modified: bool = False
    error_category: Optional[str] = None


@dataclass
class StatsSnapshot:
    """Point-in-time view of transport statistics."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    not_modified_responses: int = 0
    success_rate: float = 0

    avg_latency_ms: float = 0
    min_latency_ms: float = 0
    max_latency_ms: float = 0
    p95_latency_ms: float = 0

    requests_by_endpoint: Dict[str, int] = field(default_factory=dict)
    errors_by_category: Dict[str, int] = field(default_factory=dict)

    uptime_ms: int = 0
    last_request_at: Optional[float] = None


class RequestStats:
    """
    Collects statistics for requests issued by the remote client.

    Example:
        ```python
        stats = RequestStats()
        stats.record(RequestRecord(
            endpoint="/api/client/features",
            status_code=304,
            latency_ms=12.5,
            not_modified=True,
        ))
        print(stats.snapshot().not_modified_responses)
        print(stats.to_prometheus())
        ```
    """

    def __init__(self, max_latency_history: int = 1000):
        self._max_latency_history = max_latency_history
        self._lock = threading.Lock()
        self.reset()

    def record(self, record: RequestRecord) -> None:
        """Record a completed (or failed) request."""
        now = time.time()
        success = record.error_category is None and record.status_code is not None

        with self._lock:
            self._total_requests += 1
            self._last_request_at = now
            self._by_endpoint[record.endpoint] += 1

            if success:
                self._successful_requests += 1
            else:
                self._failed_requests += 1

            if record.not_modified:
                self._not_modified_responses += 1

            if record.error_category:
                self._errors_by_category[record.error_category] += 1

            self._latencies.append(record.latency_ms)
            if len(self._latencies) > self._max_latency_history:
                self._latencies.pop(0)

    def snapshot(self) -> StatsSnapshot:
        """Get a consistent snapshot of the collected statistics."""
        with self._lock:
            total = self._total_requests
            latencies = sorted(self._latencies)
            return StatsSnapshot(
                total_requests=total,
                successful_requests=self._successful_requests,
                failed_requests=self._failed_requests,
                not_modified_responses=self._not_modified_responses,
                success_rate=(self._successful_requests / total * 100) if total else 0,
                avg_latency_ms=sum(latencies) / len(latencies) if latencies else 0,
                min_latency_ms=latencies[0] if latencies else 0,
                max_latency_ms=latencies[-1] if latencies else 0,
                p95_latency_ms=_percentile(latencies, 95),
                requests_by_endpoint=dict(self._by_endpoint),
                errors_by_category=dict(self._errors_by_category),
                uptime_ms=int((time.time() - self._start_time) * 1000),
                last_request_at=self._last_request_at,
            )

    def to_prometheus(self, prefix: str = "unleash_lite") -> str:
        """Export statistics in Prometheus text format."""
        snap = self.snapshot()
        lines: List[str] = []

        def metric(name: str, kind: str, help_text: str, value: float, labels: str = "") -> None:
            full_name = f"{prefix}_{name}"
            lines.append(f"# HELP {full_name} {help_text}")
            lines.append(f"# TYPE {full_name} {kind}")
            lines.append(f"{full_name}{labels} {value}")

        metric("requests_total", "counter", "Total number of requests", snap.total_requests)
        metric("requests_success_total", "counter", "Successful requests", snap.successful_requests)
        metric("requests_failed_total", "counter", "Failed requests", snap.failed_requests)
        metric("not_modified_total", "counter", "304 Not Modified responses", snap.not_modified_responses)
        metric("latency_avg_ms", "gauge", "Average request latency", snap.avg_latency_ms)
        metric("latency_p95_ms", "gauge", "95th percentile request latency", snap.p95_latency_ms)

        for category, count in snap.errors_by_category.items():
            lines.append(f'{prefix}_errors_total{{category="{category}"}} {count}')

        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        """Reset all statistics."""
        with self._lock:
            self._total_requests = 0
            self._successful_requests = 0
            self._failed_requests = 0
            self._not_modified_responses = 0
            self._latencies: List[float] = []
            self._by_endpoint: Dict[str, int] = defaultdict(int)
            self._errors_by_category: Dict[str, int] = defaultdict(int)
            self._start_time = time.time()
            self._last_request_at: Optional[float] = None


def _percentile(sorted_values: List[float], pct: float) -> float:
    if not sorted_values:
        return 0
    index = int(len(sorted_values) * pct / 100)
    return sorted_values[min(index, len(sorted_values) - 1)]
