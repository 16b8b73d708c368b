"""
Span recording

SpanRecorder opens a span when a request starts and finalizes it when the
response (or transport error) is observed. A span is owned by the request that
created it until it is handed to the export pipeline; once finished it is
read-only.
"""

import logging
import time
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from loadtrace.config import TraceIdFormat
from loadtrace.errors import SpanAlreadyFinishedError
from loadtrace.trace.context import TraceContext, new_trace_id
from loadtrace.trace.trace_id import new_k6_trace_id

logger = logging.getLogger(__name__)

Scalar = Union[str, bool, int, float]


def _scalar(value: Any) -> Scalar:
    if isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


def describe_error(error: Union[BaseException, str]) -> str:
    """Render an error the way it is stored on a span"""
    if isinstance(error, BaseException):
        message = str(error)
        return f"{type(error).__name__}: {message}" if message else type(error).__name__
    return str(error)


class Span:
    """A timed record of one outbound HTTP request.

    Times are unix nanoseconds. end_time is derived from a monotonic clock so
    that end_time >= start_time even if the wall clock steps backwards.
    """

    def __init__(self, context: TraceContext, name: str, attributes: Optional[Mapping[str, Any]] = None):
        self.context = context
        self.name = name
        self.start_time = time.time_ns()
        self.end_time: Optional[int] = None
        self.status_code: Optional[int] = None
        self.error: Optional[str] = None
        self._attributes: Dict[str, Scalar] = {
            key: _scalar(value) for key, value in (attributes or {}).items()
        }
        self._start_monotonic = time.monotonic_ns()

    @property
    def is_finished(self) -> bool:
        return self.end_time is not None

    @property
    def attributes(self) -> Mapping[str, Scalar]:
        return MappingProxyType(self._attributes)

    @property
    def duration(self) -> Optional[float]:
        """Duration in milliseconds, None while the span is open"""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time) / 1_000_000

    def set_attribute(self, key: str, value: Any) -> None:
        if self.is_finished:
            raise SpanAlreadyFinishedError(f"span {self.context.span_id_hex} is finished")
        self._attributes[key] = _scalar(value)

    def _finalize(self, status_code: Optional[int], error: Optional[str]) -> None:
        elapsed = time.monotonic_ns() - self._start_monotonic
        self.status_code = status_code
        self.error = error
        self.end_time = self.start_time + max(elapsed, 0)

    def __repr__(self) -> str:
        state = "finished" if self.is_finished else "open"
        return (
            f"Span(name={self.name!r}, trace_id={self.context.trace_id_hex}, "
            f"span_id={self.context.span_id_hex}, {state})"
        )


class SpanRecorder:
    """Creates and finishes spans for outbound requests"""

    def __init__(self, trace_id_format: TraceIdFormat = TraceIdFormat.RANDOM):
        self.trace_id_format = trace_id_format

    def new_root(self, sampled: bool = True) -> TraceContext:
        """Create a root context using the configured trace id format"""
        if self.trace_id_format == TraceIdFormat.K6:
            return TraceContext.root(trace_id=new_k6_trace_id(), sampled=sampled)
        return TraceContext.root(trace_id=new_trace_id(), sampled=sampled)

    def start(self, parent: Optional[TraceContext], name: str,
              attributes: Optional[Mapping[str, Any]] = None,
              trace_id: Optional[int] = None) -> Span:
        """Open a span

        Args:
            parent: Context the new span descends from
            name: Span name, e.g. "HTTP GET"
            attributes: Initial attributes (method, url, ...)
            trace_id: Trace to join as a top-level span when there is no parent;
                a new trace is rooted when both are None

        Returns:
            Span: Open span with a fresh span id
        """
        if parent is not None:
            context = parent.child()
        elif trace_id is not None:
            context = TraceContext.root(trace_id=trace_id)
        else:
            context = self.new_root()
        return Span(context, name, attributes)

    def finish(self, span: Span, status_code: Optional[int] = None,
               error: Optional[Union[BaseException, str]] = None,
               attributes: Optional[Mapping[str, Any]] = None) -> Span:
        """Finish a span with either a response status or an error

        Args:
            span: Span returned by start()
            status_code: Response status code on success
            error: Transport error when the request failed; no status is recorded then
            attributes: Extra attributes to add before the span is sealed

        Returns:
            Span: The same span, now finished

        Raises:
            SpanAlreadyFinishedError: If the span was already finished
        """
        if span.is_finished:
            raise SpanAlreadyFinishedError(
                f"span {span.context.span_id_hex} ({span.name}) finished twice"
            )
        for key, value in (attributes or {}).items():
            span.set_attribute(key, value)

        if error is not None:
            span._finalize(None, describe_error(error))
        else:
            if status_code is not None:
                span.set_attribute("http.status_code", status_code)
            span._finalize(status_code, None)

        logger.debug(f"Finished {span!r} in {span.duration:.2f}ms")
        return span
