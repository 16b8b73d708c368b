"""
Trace context identity

TraceContext is the immutable (trace_id, span_id, parent_span_id, sampled)
tuple carried by every span and written into propagation headers.
"""

from dataclasses import dataclass, replace
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.trace.id_generator import RandomIdGenerator

# RandomIdGenerator draws from random.getrandbits; no shared counter, no lock
_id_generator = RandomIdGenerator()


def new_trace_id() -> int:
    """Generate a random, non-zero 128-bit trace id"""
    return _id_generator.generate_trace_id()


def new_span_id() -> int:
    """Generate a random, non-zero 64-bit span id"""
    return _id_generator.generate_span_id()


@dataclass(frozen=True)
class TraceContext:
    """Identity of one span within one trace.

    Attributes:
        trace_id: 128-bit trace identifier
        span_id: 64-bit span identifier
        parent_span_id: 64-bit identifier of the parent span, if any
        sampled: Whether the trace is sampled
    """
    trace_id: int
    span_id: int
    parent_span_id: Optional[int] = None
    sampled: bool = True

    @classmethod
    def root(cls, trace_id: Optional[int] = None, sampled: bool = True) -> "TraceContext":
        """Create the root context of a new trace"""
        return cls(
            trace_id=trace_id if trace_id is not None else new_trace_id(),
            span_id=new_span_id(),
            sampled=sampled,
        )

    def child(self) -> "TraceContext":
        """Derive a context for a new span whose parent is this one"""
        return replace(self, span_id=new_span_id(), parent_span_id=self.span_id)

    @property
    def trace_id_hex(self) -> str:
        return trace.format_trace_id(self.trace_id)

    @property
    def span_id_hex(self) -> str:
        return trace.format_span_id(self.span_id)

    @property
    def parent_span_id_hex(self) -> Optional[str]:
        if self.parent_span_id is None:
            return None
        return trace.format_span_id(self.parent_span_id)

    @property
    def is_valid(self) -> bool:
        return self.trace_id != trace.INVALID_TRACE_ID and self.span_id != trace.INVALID_SPAN_ID

    def to_span_context(self) -> trace.SpanContext:
        """Convert to an OpenTelemetry SpanContext"""
        flags = trace.TraceFlags.SAMPLED if self.sampled else trace.TraceFlags.DEFAULT
        return trace.SpanContext(
            trace_id=self.trace_id,
            span_id=self.span_id,
            is_remote=False,
            trace_flags=trace.TraceFlags(flags),
        )

    @classmethod
    def from_span_context(cls, span_context: trace.SpanContext) -> Optional["TraceContext"]:
        """Convert from an OpenTelemetry SpanContext, None if it is invalid"""
        if span_context is None or not span_context.is_valid:
            return None
        return cls(
            trace_id=span_context.trace_id,
            span_id=span_context.span_id,
            sampled=span_context.trace_flags.sampled,
        )
