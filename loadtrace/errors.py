"""
Tracing error types

All errors raised by the tracing layer derive from TracingError so callers can
tell them apart from the transport's own exceptions.
"""


class TracingError(Exception):
    """Base exception for tracing-related errors."""
    pass


class ConfigurationError(TracingError, ValueError):
    """Invalid exporter/propagator selection or malformed option.

    Always raised at construction time, never deferred to request time.
    """
    pass


class PipelineClosedError(TracingError):
    """Span offered to a pipeline that no longer accepts intake."""
    pass


class SpanAlreadyFinishedError(TracingError, RuntimeError):
    """A span was finished (or mutated) after it had already been finished."""
    pass
