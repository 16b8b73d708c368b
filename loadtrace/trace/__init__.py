"""
Span model and trace identity

- context: TraceContext and id generation
- trace_id: k6-style encoded trace ids
- span: Span and SpanRecorder
"""

from .context import TraceContext, new_span_id, new_trace_id
from .span import Span, SpanRecorder, describe_error
from .trace_id import (
    K6_CODE_CLOUD,
    K6_CODE_LOCAL,
    K6_PREFIX,
    K6TraceId,
    decode_trace_id,
    encode_trace_id,
    new_k6_trace_id,
)

__all__ = [
    "TraceContext",
    "new_span_id",
    "new_trace_id",
    "Span",
    "SpanRecorder",
    "describe_error",
    "K6_CODE_CLOUD",
    "K6_CODE_LOCAL",
    "K6_PREFIX",
    "K6TraceId",
    "decode_trace_id",
    "encode_trace_id",
    "new_k6_trace_id",
]
