"""Prometheus-style metrics collector for the audit pipeline. Thread-safe, in-memory."""

import threading
from typing import Any


def _series_key(name: str, labels: dict[str, str]) -> str:
    if not labels:
        return name
    rendered = ",".join(f"{k}={labels[k]}" for k in sorted(labels))
    return f"{name}:{rendered}"


class MetricsCollector:
    """
    In-memory registry of labelled counters and latency histograms.
    Thread-safe: the ORM hook may increment from worker threads while the
    dispatcher increments on the event loop.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, float] = {}
        self._histograms: dict[str, list[float]] = {}

    def increment(self, name: str, value: float = 1.0, **labels: str) -> None:
        """Increment a counter; keyword labels create a separate series (e.g. reason='queue_full')."""
        key = _series_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + value

    def observe_latency(self, name: str, latency_ms: float, **labels: str) -> None:
        key = _series_key(name, labels)
        with self._lock:
            self._histograms.setdefault(key, []).append(latency_ms)

    def get_counter(self, name: str, **labels: str) -> float:
        with self._lock:
            return self._counters.get(_series_key(name, labels), 0)

    def export_metrics(self) -> dict[str, Any]:
        """Export all series as a dict."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "histograms": {
                    k: {
                        "count": len(v),
                        "sum": sum(v),
                        "max": max(v) if v else 0.0,
                    }
                    for k, v in self._histograms.items()
                },
            }

    def reset(self) -> None:
        """Reset all metrics (for tests)."""
        with self._lock:
            self._counters.clear()
            self._histograms.clear()


# Metric names used across the audit pipeline.
AUDIT_ENQUEUED = "audit_events_enqueued"
AUDIT_DROPPED = "audit_events_dropped"
AUDIT_RECORDED = "audit_events_recorded"
AUDIT_RECORD_FAILURES = "audit_record_failures"
AUDIT_CHAIN_CONTENTION = "audit_chain_contention"
AUDIT_CHAIN_VERIFICATIONS = "audit_chain_verifications"
AUDIT_APPEND_LATENCY = "audit_append_latency_ms"
