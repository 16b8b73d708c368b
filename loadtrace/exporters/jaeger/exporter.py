"""
Jaeger exporter backend

Posts Thrift-encoded batches to a Jaeger collector's HTTP endpoint
(/api/traces, binary protocol).
"""

from typing import Sequence

from loadtrace.exporters.exporter_interface import ExporterBackend
from loadtrace.exporters.jaeger.encoder import encode_batch, serialize_batch
from loadtrace.trace.span import Span

TRACES_PATH = "/api/traces"


class JaegerExporter(ExporterBackend):
    """Jaeger collector (Thrift over HTTP) exporter backend"""

    kind = "jaeger"
    content_type = "application/x-thrift"

    def _resolve_endpoint(self, endpoint: str) -> str:
        endpoint = endpoint.rstrip("/")
        if endpoint.endswith(TRACES_PATH):
            return endpoint
        return endpoint + TRACES_PATH

    def encode(self, batch: Sequence[Span]) -> bytes:
        return serialize_batch(encode_batch(batch, self.config.service_name))
