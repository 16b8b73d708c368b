"""
Tests for span recording and trace context
"""
import pytest

from loadtrace.config import TraceIdFormat
from loadtrace.errors import SpanAlreadyFinishedError
from loadtrace.trace.context import TraceContext
from loadtrace.trace.span import SpanRecorder, describe_error
from loadtrace.trace.trace_id import decode_trace_id


class TestTraceContext:
    """Test TraceContext derivation"""

    def test_root_context(self):
        context = TraceContext.root()
        assert context.is_valid
        assert context.parent_span_id is None
        assert context.sampled is True
        assert len(context.trace_id_hex) == 32
        assert len(context.span_id_hex) == 16

    def test_child_keeps_trace_and_links_parent(self):
        root = TraceContext.root()
        child = root.child()
        assert child.trace_id == root.trace_id
        assert child.parent_span_id == root.span_id
        assert child.span_id != root.span_id
        assert child.parent_span_id_hex == root.span_id_hex

    def test_span_context_conversion(self):
        context = TraceContext.root(sampled=False)
        converted = TraceContext.from_span_context(context.to_span_context())
        assert converted.trace_id == context.trace_id
        assert converted.span_id == context.span_id
        assert converted.sampled is False

    def test_zero_ids_are_invalid(self):
        assert not TraceContext(trace_id=0, span_id=1).is_valid
        assert not TraceContext(trace_id=1, span_id=0).is_valid


class TestSpanRecorder:
    """Test span start/finish"""

    def test_start_without_parent_roots_new_trace(self):
        recorder = SpanRecorder()
        first = recorder.start(None, "HTTP GET")
        second = recorder.start(None, "HTTP GET")
        assert first.context.trace_id != second.context.trace_id
        assert first.context.parent_span_id is None

    def test_start_with_parent(self):
        recorder = SpanRecorder()
        parent = TraceContext.root()
        span = recorder.start(parent, "HTTP GET", {"http.method": "GET"})
        assert span.context.trace_id == parent.trace_id
        assert span.context.parent_span_id == parent.span_id
        assert span.attributes["http.method"] == "GET"
        assert not span.is_finished

    def test_start_joining_trace(self):
        """Test a top-level span in an existing trace"""
        recorder = SpanRecorder()
        span = recorder.start(None, "HTTP GET", trace_id=0xABC)
        assert span.context.trace_id == 0xABC
        assert span.context.parent_span_id is None

    def test_k6_trace_id_format(self):
        recorder = SpanRecorder(TraceIdFormat.K6)
        span = recorder.start(None, "HTTP GET")
        assert decode_trace_id(span.context.trace_id).is_valid()

    def test_finish_with_status(self):
        recorder = SpanRecorder()
        span = recorder.finish(recorder.start(None, "HTTP GET"), status_code=201)
        assert span.is_finished
        assert span.status_code == 201
        assert span.error is None
        assert span.attributes["http.status_code"] == 201
        assert span.end_time >= span.start_time
        assert span.duration >= 0

    def test_finish_with_error(self):
        """Test transport errors leave no status code"""
        recorder = SpanRecorder()
        span = recorder.finish(
            recorder.start(None, "HTTP GET"),
            status_code=200,
            error=ConnectionError("refused"),
        )
        assert span.status_code is None
        assert span.error == "ConnectionError: refused"
        assert "http.status_code" not in span.attributes

    def test_finish_twice_raises(self):
        recorder = SpanRecorder()
        span = recorder.finish(recorder.start(None, "HTTP GET"), status_code=200)
        with pytest.raises(SpanAlreadyFinishedError):
            recorder.finish(span, status_code=500)
        assert span.status_code == 200

    def test_attributes_frozen_after_finish(self):
        recorder = SpanRecorder()
        span = recorder.finish(recorder.start(None, "HTTP GET"), status_code=200)
        with pytest.raises(SpanAlreadyFinishedError):
            span.set_attribute("late", True)
        with pytest.raises(TypeError):
            span.attributes["late"] = True

    def test_non_scalar_attributes_are_stringified(self):
        recorder = SpanRecorder()
        span = recorder.start(None, "HTTP GET", {"ids": [1, 2]})
        assert span.attributes["ids"] == "[1, 2]"


class TestDescribeError:

    def test_exception_with_message(self):
        assert describe_error(TimeoutError("read timed out")) == "TimeoutError: read timed out"

    def test_exception_without_message(self):
        assert describe_error(KeyError()) == "KeyError"

    def test_string(self):
        assert describe_error("boom") == "boom"
