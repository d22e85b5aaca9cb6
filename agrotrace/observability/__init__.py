"""Observability layer: in-process audit pipeline metrics. No external SaaS."""

from agrotrace.observability.metrics import MetricsCollector

__all__ = [
    "MetricsCollector",
]
