"""MetricsCollector tests: counters, labelled series, histogram, thread safety."""

import threading

from agrotrace.observability.metrics import AUDIT_DROPPED, MetricsCollector


def test_metrics_counter_increment():
    """Counter increments correctly."""
    m = MetricsCollector()
    m.increment("audit_events_recorded")
    m.increment("audit_events_recorded", 2)
    out = m.export_metrics()
    assert out["counters"]["audit_events_recorded"] == 3


def test_metrics_labels_create_separate_series():
    m = MetricsCollector()
    m.increment(AUDIT_DROPPED, reason="queue_full")
    m.increment(AUDIT_DROPPED, reason="queue_full")
    m.increment(AUDIT_DROPPED, reason="not_started")
    assert m.get_counter(AUDIT_DROPPED, reason="queue_full") == 2
    assert m.get_counter(AUDIT_DROPPED, reason="not_started") == 1
    assert m.get_counter(AUDIT_DROPPED) == 0
    assert "audit_events_dropped:reason=queue_full" in m.export_metrics()["counters"]


def test_label_order_does_not_matter():
    m = MetricsCollector()
    m.increment("x", a="1", b="2")
    assert m.get_counter("x", b="2", a="1") == 1


def test_metrics_histogram_tracks_latency():
    """Histogram tracks latency."""
    m = MetricsCollector()
    m.observe_latency("audit_append_latency_ms", 10.5)
    m.observe_latency("audit_append_latency_ms", 20.0)
    h = m.export_metrics()["histograms"]["audit_append_latency_ms"]
    assert h == {"count": 2, "sum": 30.5, "max": 20.0}


def test_metrics_thread_safe():
    """Concurrent increments are safe."""
    m = MetricsCollector()

    def inc():
        for _ in range(100):
            m.increment("audit_events_enqueued")

    threads = [threading.Thread(target=inc) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert m.export_metrics()["counters"]["audit_events_enqueued"] == 1000


def test_metrics_reset():
    """Reset clears all metrics."""
    m = MetricsCollector()
    m.increment("x")
    m.observe_latency("y", 1.0)
    m.reset()
    out = m.export_metrics()
    assert out["counters"] == {}
    assert out["histograms"] == {}
