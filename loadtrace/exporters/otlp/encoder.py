"""
OTLP trace encoding

Builds an ExportTraceServiceRequest (opentelemetry-proto) from finished spans:
one resource describing the load generator, one instrumentation scope, CLIENT
spans with typed attributes.
"""

from typing import Any, Iterable, List, Mapping, Optional, Sequence

from opentelemetry.proto.collector.trace.v1.trace_service_pb2 import ExportTraceServiceRequest
from opentelemetry.proto.common.v1.common_pb2 import AnyValue, KeyValue
from opentelemetry.proto.trace.v1.trace_pb2 import Span as PB2Span
from opentelemetry.proto.trace.v1.trace_pb2 import Status

from loadtrace.exporters.exporter_interface import span_failed
from loadtrace.trace.span import Span
from loadtrace._version import __version__

SCOPE_NAME = "loadtrace"


def _any_value(value: Any) -> AnyValue:
    # bool before int, bool is an int subclass
    if isinstance(value, bool):
        return AnyValue(bool_value=value)
    if isinstance(value, int):
        return AnyValue(int_value=value)
    if isinstance(value, float):
        return AnyValue(double_value=value)
    return AnyValue(string_value=str(value))


def _key_values(attributes: Mapping[str, Any]) -> List[KeyValue]:
    return [KeyValue(key=key, value=_any_value(value)) for key, value in attributes.items()]


def resource_attributes(service_name: str, extra: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
    attributes = {
        "service.name": service_name,
        "telemetry.sdk.name": SCOPE_NAME,
        "telemetry.sdk.language": "python",
        "telemetry.sdk.version": __version__,
    }
    attributes.update(extra or {})
    return attributes


def encode_span(span: Span) -> PB2Span:
    """Encode one finished span"""
    context = span.context
    pb_span = PB2Span(
        trace_id=context.trace_id.to_bytes(16, byteorder="big"),
        span_id=context.span_id.to_bytes(8, byteorder="big"),
        name=span.name,
        kind=PB2Span.SPAN_KIND_CLIENT,
        start_time_unix_nano=span.start_time,
        end_time_unix_nano=span.end_time,
        attributes=_key_values(span.attributes),
    )
    if context.parent_span_id is not None:
        pb_span.parent_span_id = context.parent_span_id.to_bytes(8, byteorder="big")

    if span.error is not None:
        pb_span.status.CopyFrom(Status(code=Status.STATUS_CODE_ERROR, message=span.error))
        pb_span.events.add(
            name="exception",
            time_unix_nano=span.end_time,
            attributes=_key_values({"exception.message": span.error}),
        )
    elif span_failed(span):
        pb_span.status.CopyFrom(Status(code=Status.STATUS_CODE_ERROR))

    return pb_span


def encode_batch(batch: Sequence[Span], service_name: str,
                 extra_resource_attributes: Optional[Mapping[str, Any]] = None) -> ExportTraceServiceRequest:
    """Encode a batch into a single ExportTraceServiceRequest

    Args:
        batch: Finished spans
        service_name: Value of the service.name resource attribute
        extra_resource_attributes: Additional resource attributes

    Returns:
        ExportTraceServiceRequest: Request message
    """
    request = ExportTraceServiceRequest()
    resource_spans = request.resource_spans.add()
    resource_spans.resource.attributes.extend(
        _key_values(resource_attributes(service_name, extra_resource_attributes))
    )

    scope_spans = resource_spans.scope_spans.add()
    scope_spans.scope.name = SCOPE_NAME
    scope_spans.scope.version = __version__
    scope_spans.spans.extend(encode_span(span) for span in batch)
    return request


def iter_spans(request: ExportTraceServiceRequest) -> Iterable[PB2Span]:
    """Walk every span in a request (used by tests and debugging tools)"""
    for resource_spans in request.resource_spans:
        for scope_spans in resource_spans.scope_spans:
            yield from scope_spans.spans
