"""
OpenTelemetry metrics about the tracing layer itself

- metrics: counters for enqueued/exported/dropped spans, export latency
"""

from .metrics import (
    setup_metrics,
    get_counter,
    get_histogram,
    increment_counter,
    record_latency,
)

__all__ = [
    "setup_metrics",
    "get_counter",
    "get_histogram",
    "increment_counter",
    "record_latency",
]
