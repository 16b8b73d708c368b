"""
Exporter backends

Backends encode batches of finished spans and send them to a collector:
- otlp: OTLP/HTTP (protobuf or JSON)
- jaeger: Jaeger Thrift batches over HTTP
- crocospans: per-request metadata records

All backends share the result classification and cooldown logic of
ExporterBackend and differ only in their encoding.
"""

from .exporter_factory import ExporterFactory
from .exporter_interface import ExporterBackend, ExportResult, span_failed

__all__ = [
    "ExporterFactory",
    "ExporterBackend",
    "ExportResult",
    "span_failed",
]
