"""
loadtrace - tracing-instrumented HTTP client for load tests

    import loadtrace

    http = loadtrace.Http({"exporter": "otlp", "propagator": "w3c"})
    res = http.get("http://localhost:8080/")
    print(res.trace_id)

    loadtrace.shutdown(timeout=5)
"""

from .client.http import AugmentedResponse, Http, HttpClientFacade
from .config import (
    ExporterConfig,
    ExporterKind,
    OverflowPolicy,
    PropagatorKind,
    RetryPolicy,
    TraceIdFormat,
)
from .errors import (
    ConfigurationError,
    PipelineClosedError,
    SpanAlreadyFinishedError,
    TracingError,
)
from .runtime import setup, shutdown, stats, teardown, version
from .trace.context import TraceContext

__version__ = version

__all__ = [
    "AugmentedResponse",
    "Http",
    "HttpClientFacade",
    "ExporterConfig",
    "ExporterKind",
    "OverflowPolicy",
    "PropagatorKind",
    "RetryPolicy",
    "TraceIdFormat",
    "ConfigurationError",
    "PipelineClosedError",
    "SpanAlreadyFinishedError",
    "TracingError",
    "TraceContext",
    "setup",
    "shutdown",
    "stats",
    "teardown",
    "version",
]
