"""Thread-safe in-memory metrics for the development server."""

from __future__ import annotations

import threading
from collections import Counter

LATENCY_BUCKETS_MS = (5, 10, 25, 50, 100, 250, 500, 1000)


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_requests = 0
        self._active_connections = 0
        self._status_counts: Counter[str] = Counter()
        self._latency_buckets: Counter[str] = Counter()
        self._bytes_sent_total = 0
        self._read_errors_by_type: Counter[str] = Counter()
        self._requests_by_source: Counter[str] = Counter()
        self._requests_by_route: Counter[str] = Counter()
        self._handler_errors = 0
        self._state_saves = 0
        self._state_save_failures_by_type: Counter[str] = Counter()

    def connection_opened(self) -> None:
        with self._lock:
            self._active_connections += 1

    def connection_closed(self) -> None:
        with self._lock:
            self._active_connections = max(0, self._active_connections - 1)

    def record_request(self, status_code: int, duration_ms: float, bytes_sent: int) -> None:
        with self._lock:
            self._total_requests += 1
            self._status_counts[str(status_code)] += 1
            self._bytes_sent_total += bytes_sent
            self._latency_buckets[self._bucket_label(duration_ms)] += 1

    def record_route_hit(self, route_key: str) -> None:
        with self._lock:
            self._requests_by_source["route"] += 1
            self._requests_by_route[route_key] += 1

    def record_static_hit(self) -> None:
        with self._lock:
            self._requests_by_source["static"] += 1

    def record_handler_error(self) -> None:
        with self._lock:
            self._handler_errors += 1

    def record_read_error(self, error_type: str) -> None:
        with self._lock:
            self._read_errors_by_type[error_type] += 1

    def record_state_save(self) -> None:
        with self._lock:
            self._state_saves += 1

    def record_state_save_failure(self, error_type: str) -> None:
        with self._lock:
            self._state_save_failures_by_type[error_type] += 1

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            return {
                "total_requests": self._total_requests,
                "active_connections": self._active_connections,
                "status_counts": dict(self._status_counts),
                "latency_buckets_ms": dict(self._latency_buckets),
                "bytes_sent_total": self._bytes_sent_total,
                "read_errors_by_type": dict(self._read_errors_by_type),
                "requests_by_source": dict(self._requests_by_source),
                "requests_by_route": dict(self._requests_by_route),
                "handler_errors": self._handler_errors,
                "state_saves": self._state_saves,
                "state_save_failures_by_type": dict(self._state_save_failures_by_type),
            }

    def _bucket_label(self, duration_ms: float) -> str:
        for limit in LATENCY_BUCKETS_MS:
            if duration_ms <= limit:
                return f"<= {limit}ms"
        return f"> {LATENCY_BUCKETS_MS[-1]}ms"
