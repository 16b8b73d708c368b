"""
OpenTelemetry Metrics for the tracing layer

Counters and histograms describing the export pipeline itself (spans enqueued,
exported and dropped, export latency). Instruments are no-ops until a
MeterProvider is installed with setup_metrics(); the in-process PipelineStats
counters stay authoritative either way.
"""

import logging
import threading
from typing import Any, Dict

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    PeriodicExportingMetricReader
)
from opentelemetry.sdk.resources import Resource

logger = logging.getLogger(__name__)

METER_NAME = "loadtrace"

SPANS_ENQUEUED = "loadtrace.spans.enqueued"
SPANS_EXPORTED = "loadtrace.spans.exported"
SPANS_DROPPED = "loadtrace.spans.dropped"
EXPORT_RETRIES = "loadtrace.export.retries"
EXPORT_LATENCY = "loadtrace.export.latency"

# Instrument caches
_counters = {}
_histograms = {}
_lock = threading.Lock()


def setup_metrics(service_name: str, otlp_endpoint: str = "http://localhost:4318/v1/metrics",
                  export_interval_ms: int = 5000, console: bool = False):
    """Configure OpenTelemetry metrics collection

    Args:
        service_name: Service name
        otlp_endpoint: OTLP/HTTP metrics receiver address
        export_interval_ms: Metrics export interval in milliseconds
        console: Also print metrics to stdout (development debugging)

    Returns:
        Meter: Meter for the tracing layer
    """
    readers = [
        PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=otlp_endpoint),
            export_interval_millis=export_interval_ms
        )
    ]
    if console:
        readers.append(PeriodicExportingMetricReader(
            ConsoleMetricExporter(),
            export_interval_millis=export_interval_ms
        ))

    provider = MeterProvider(
        resource=Resource.create({"service.name": service_name}),
        metric_readers=readers,
    )
    metrics.set_meter_provider(provider)

    logger.info(f"OpenTelemetry metrics configured, service name: {service_name}, OTLP endpoint: {otlp_endpoint}")

    return metrics.get_meter(METER_NAME)


def get_counter(name: str, description: str, unit: str = "1"):
    """Get or create counter

    Args:
        name: Counter name
        description: Counter description
        unit: Counter unit (default "1", representing count)

    Returns:
        Counter: Counter object
    """
    with _lock:
        if name not in _counters:
            meter = metrics.get_meter(METER_NAME)
            _counters[name] = meter.create_counter(
                name=name,
                description=description,
                unit=unit
            )
        return _counters[name]


def get_histogram(name: str, description: str, unit: str = "ms"):
    """Get or create histogram

    Args:
        name: Histogram name
        description: Histogram description
        unit: Histogram unit (default "ms", representing milliseconds)

    Returns:
        Histogram: Histogram object
    """
    with _lock:
        if name not in _histograms:
            meter = metrics.get_meter(METER_NAME)
            _histograms[name] = meter.create_histogram(
                name=name,
                description=description,
                unit=unit
            )
        return _histograms[name]


def increment_counter(name: str, amount: int = 1, attributes: Dict[str, Any] = None):
    """Increment counter value

    Args:
        name: Counter name
        amount: Amount to increment
        attributes: Attribute labels
    """
    if amount <= 0:
        return
    counter = get_counter(name, f"Counter for {name}")
    counter.add(amount, attributes or {})


def record_latency(name: str, value_ms: float, attributes: Dict[str, Any] = None):
    """Record latency histogram

    Args:
        name: Histogram name
        value_ms: Latency value in milliseconds
        attributes: Attribute labels
    """
    histogram = get_histogram(name, f"Latency histogram for {name}")
    histogram.record(value_ms, attributes or {})
