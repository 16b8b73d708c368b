"""
Jaeger Thrift encoding

Builds the jaeger.thrift Batch a Jaeger collector ingests on /api/traces,
using the Thrift types shipped with opentelemetry-exporter-jaeger-thrift, and
serializes it with the binary protocol.

Thrift ids are signed i64; 128-bit trace ids are split into high and low
halves. Times are microseconds.
"""

from typing import Any, List, Mapping, Optional, Sequence

from opentelemetry.exporter.jaeger.thrift.gen.jaeger import ttypes as jaeger
from thrift.protocol import TBinaryProtocol
from thrift.transport import TTransport

from loadtrace.exporters.exporter_interface import span_failed
from loadtrace.trace.span import Span
from loadtrace._version import __version__

_MAX_I64 = (1 << 63) - 1


def to_i64(value: int) -> int:
    """Reinterpret an unsigned 64-bit id as the signed i64 Thrift carries"""
    value &= (1 << 64) - 1
    return value - (1 << 64) if value > _MAX_I64 else value


def encode_tag(key: str, value: Any) -> jaeger.Tag:
    # bool before int, bool is an int subclass
    if isinstance(value, bool):
        return jaeger.Tag(key=key, vType=jaeger.TagType.BOOL, vBool=value)
    if isinstance(value, int):
        return jaeger.Tag(key=key, vType=jaeger.TagType.LONG, vLong=value)
    if isinstance(value, float):
        return jaeger.Tag(key=key, vType=jaeger.TagType.DOUBLE, vDouble=value)
    return jaeger.Tag(key=key, vType=jaeger.TagType.STRING, vStr=str(value))


def encode_span(span: Span) -> jaeger.Span:
    """Encode one finished span into a jaeger.thrift Span"""
    context = span.context
    trace_id_high = to_i64(context.trace_id >> 64)
    trace_id_low = to_i64(context.trace_id)

    tags = [encode_tag(key, value) for key, value in span.attributes.items()]
    tags.append(encode_tag("span.kind", "client"))
    if span_failed(span):
        tags.append(encode_tag("error", True))

    logs = []
    if span.error is not None:
        logs.append(jaeger.Log(
            timestamp=span.end_time // 1000,
            fields=[encode_tag("event", "error"), encode_tag("message", span.error)],
        ))

    references = []
    parent_span_id = 0
    if context.parent_span_id is not None:
        parent_span_id = to_i64(context.parent_span_id)
        references.append(jaeger.SpanRef(
            refType=jaeger.SpanRefType.CHILD_OF,
            traceIdHigh=trace_id_high,
            traceIdLow=trace_id_low,
            spanId=parent_span_id,
        ))

    return jaeger.Span(
        traceIdHigh=trace_id_high,
        traceIdLow=trace_id_low,
        spanId=to_i64(context.span_id),
        parentSpanId=parent_span_id,
        operationName=span.name,
        references=references,
        flags=1 if context.sampled else 0,
        startTime=span.start_time // 1000,
        duration=(span.end_time - span.start_time) // 1000,
        tags=tags,
        logs=logs,
    )


def encode_batch(batch: Sequence[Span], service_name: str,
                 process_tags: Optional[Mapping[str, Any]] = None) -> jaeger.Batch:
    """Encode a batch of spans under one process

    Args:
        batch: Finished spans
        service_name: Process service name
        process_tags: Extra process tags

    Returns:
        jaeger.Batch: Thrift batch
    """
    tags = {"exporter": "loadtrace", "loadtrace.version": __version__}
    tags.update(process_tags or {})
    process = jaeger.Process(
        serviceName=service_name,
        tags=[encode_tag(key, value) for key, value in tags.items()],
    )
    spans: List[jaeger.Span] = [encode_span(span) for span in batch]
    return jaeger.Batch(process=process, spans=spans)


def serialize_batch(batch: jaeger.Batch) -> bytes:
    """Serialize a Thrift batch with the binary protocol"""
    buffer = TTransport.TMemoryBuffer()
    batch.write(TBinaryProtocol.TBinaryProtocol(buffer))
    return buffer.getvalue()


def deserialize_batch(payload: bytes) -> jaeger.Batch:
    """Read a binary-protocol Thrift batch back"""
    batch = jaeger.Batch()
    batch.read(TBinaryProtocol.TBinaryProtocol(TTransport.TMemoryBuffer(payload)))
    return batch
