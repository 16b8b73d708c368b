"""
OTLP/HTTP exporter backend

Posts ExportTraceServiceRequest messages to <endpoint>/v1/traces, either as
binary protobuf (default) or as OTLP/JSON.
"""

import logging
from typing import Optional, Sequence

import requests
from google.protobuf.message import DecodeError
from opentelemetry.proto.collector.trace.v1.trace_service_pb2 import ExportTraceServiceResponse

from loadtrace.config import ExporterConfig
from loadtrace.exporters.exporter_interface import ExporterBackend
from loadtrace.exporters.otlp.encoder import encode_batch
from loadtrace.trace.span import Span
from loadtrace.utils.serialization import protobuf_to_otlp_json

logger = logging.getLogger(__name__)

TRACES_PATH = "/v1/traces"


class OTLPExporter(ExporterBackend):
    """OTLP/HTTP exporter backend"""

    kind = "otlp"

    def __init__(self, config: ExporterConfig, session: Optional[requests.Session] = None):
        self.use_json = config.protocol == "http/json"
        self.content_type = "application/json" if self.use_json else "application/x-protobuf"
        super().__init__(config, session)

    def _resolve_endpoint(self, endpoint: str) -> str:
        endpoint = endpoint.rstrip("/")
        if not endpoint.endswith(TRACES_PATH):
            endpoint = f"{endpoint}{TRACES_PATH}"
        return endpoint

    def encode(self, batch: Sequence[Span]) -> bytes:
        request = encode_batch(batch, self.config.service_name)
        if self.use_json:
            return protobuf_to_otlp_json(request).encode("utf-8")
        return request.SerializeToString()

    def _on_success(self, response: requests.Response, batch: Sequence[Span]) -> None:
        # Partial success is reported in the body; only the protobuf form is inspected
        if self.use_json or not response.content:
            return
        try:
            result = ExportTraceServiceResponse.FromString(response.content)
        except DecodeError:
            logger.debug("Could not decode OTLP export response body")
            return
        if result.partial_success.rejected_spans:
            logger.warning(
                f"Collector rejected {result.partial_success.rejected_spans} of {len(batch)} spans: "
                f"{result.partial_success.error_message}"
            )
