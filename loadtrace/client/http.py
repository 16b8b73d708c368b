"""
Tracing HTTP client

Http is the object load-test scripts hold. Every request gets its own span,
the span's context is propagated in the request headers, and the finished
span is handed to the shared export pipeline for the client's configuration.

Tracing fails open: a problem in the tracing layer is logged and the request
proceeds untraced. Transport errors are recorded on the span and re-raised
unchanged.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from loadtrace.client.transport import RequestsTransport, Transport
from loadtrace.config import ExporterConfig
from loadtrace.errors import PipelineClosedError
from loadtrace.pipeline.shutdown import ShutdownCoordinator, get_coordinator
from loadtrace.propagation.codec_factory import CodecFactory
from loadtrace.propagation.codecs import header_values
from loadtrace.trace.context import TraceContext
from loadtrace.trace.span import Span, SpanRecorder

logger = logging.getLogger(__name__)

Parent = Union[TraceContext, Mapping[str, str], None]


@dataclass
class RequestInfo:
    """The request as it was sent"""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class Timings:
    """Request timings; duration in milliseconds, times in unix nanoseconds"""
    duration: float
    start_time: int
    end_time: int


@dataclass
class AugmentedResponse:
    """Transport response plus the trace id of the request's span

    trace_id is empty when the request went out untraced.
    """
    trace_id: str
    status: int
    headers: Dict[str, str]
    body: bytes
    request: RequestInfo
    timings: Timings
    url: str = ""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)


class HttpClientFacade:
    """HTTP client whose requests are traced and exported

    One instance roots one trace: every request becomes a span of that trace.
    Instances built from equal exporter configurations share one export
    pipeline.
    """

    def __init__(self,
                 config: Union[ExporterConfig, Mapping[str, Any]],
                 transport: Optional[Transport] = None,
                 parent: Parent = None,
                 coordinator: Optional[ShutdownCoordinator] = None,
                 tags: Optional[Mapping[str, Any]] = None):
        """Initialize the client

        Args:
            config: ExporterConfig, or the options mapping a script passes
                ({"exporter": ..., "propagator": ..., "endpoint": ...})
            transport: Transport used for requests (requests-based by default)
            parent: Context to nest this client's spans under; either a
                TraceContext or inbound headers carrying one
            coordinator: Owner of the export pipelines (process default if None)
            tags: Attributes added to every span, e.g. group and scenario

        Raises:
            ConfigurationError: Invalid configuration
        """
        if not isinstance(config, ExporterConfig):
            config = ExporterConfig.from_dict(config)
        self.config = config
        self._codec = CodecFactory.create(config.propagator)
        self._recorder = SpanRecorder(config.trace_id_format)
        self._owns_transport = transport is None
        self._transport = transport or RequestsTransport()
        self._coordinator = coordinator or get_coordinator()
        self._pipeline = self._coordinator.pipeline_for(config)
        self._tags = dict(tags or {})

        self._parent = self._resolve_parent(parent)
        if self._parent is not None:
            self._root = self._parent
        else:
            self._root = self._recorder.new_root()

        logger.debug(
            f"Http client created, exporter: {config.exporter.value}, "
            f"propagator: {config.propagator.value}, trace: {self._root.trace_id_hex}"
        )

    def _resolve_parent(self, parent: Parent) -> Optional[TraceContext]:
        if parent is None or isinstance(parent, TraceContext):
            return parent
        context = self._codec.extract(parent)
        if context is None:
            logger.debug("No valid parent context in headers, starting a new trace")
        return context

    @property
    def context(self) -> TraceContext:
        """Root context of this client's trace"""
        return self._root

    @property
    def trace_id(self) -> str:
        return self._root.trace_id_hex

    def _start_span(self, method: str, url: str, tags: Optional[Mapping[str, Any]]) -> Optional[Span]:
        attributes = {"http.method": method, "http.url": url}
        attributes.update(self._tags)
        attributes.update(tags or {})
        try:
            return self._recorder.start(
                self._parent,
                f"HTTP {method}",
                attributes,
                trace_id=self._root.trace_id,
            )
        except Exception as e:
            logger.exception(f"Failed to start span for {method} {url}: {str(e)}")
            return None

    def _inject(self, span: Optional[Span], headers: Dict[str, str]) -> None:
        if span is None:
            return
        try:
            for key in header_values(headers, self._codec.header_names):
                del headers[key]
            self._codec.inject(span.context, headers)
        except Exception as e:
            logger.exception(f"Failed to inject trace context: {str(e)}")

    def _finish(self, span: Optional[Span], status_code: Optional[int] = None,
                error: Optional[BaseException] = None,
                attributes: Optional[Mapping[str, Any]] = None) -> None:
        if span is None:
            return
        try:
            self._recorder.finish(span, status_code=status_code, error=error, attributes=attributes)
            self._pipeline.enqueue(span)
        except PipelineClosedError:
            logger.debug(f"Export pipeline closed, {span!r} not exported")
        except Exception as e:
            logger.exception(f"Failed to record {span!r}: {str(e)}")

    def request(self, method: str, url: str, body: Any = None,
                headers: Optional[Mapping[str, str]] = None,
                tags: Optional[Mapping[str, Any]] = None,
                timeout: Optional[float] = None) -> AugmentedResponse:
        """Send a traced request

        Args:
            method: HTTP method
            url: Absolute URL
            body: Request body
            headers: Request headers; propagation headers are added (and
                replace any the caller set)
            tags: Extra span attributes for this request
            timeout: Seconds to wait for the response

        Returns:
            AugmentedResponse: Response with the span's trace id

        Raises:
            Exception: The transport's exception, after the span was recorded
        """
        method = method.upper()
        request_headers = dict(headers or {})

        span = self._start_span(method, url, tags)
        self._inject(span, request_headers)

        start_time = time.time_ns()
        started = time.monotonic_ns()
        try:
            raw = self._transport.request(method, url, request_headers, body, timeout)
        except Exception as e:
            self._finish(span, error=e)
            raise
        elapsed = time.monotonic_ns() - started

        self._finish(span, status_code=raw.status,
                     attributes={"http.response_content_length": len(raw.body)})

        return AugmentedResponse(
            trace_id=span.context.trace_id_hex if span is not None else "",
            status=raw.status,
            headers=raw.headers,
            body=raw.body,
            request=RequestInfo(method=method, url=url, headers=request_headers),
            timings=Timings(
                duration=elapsed / 1_000_000,
                start_time=start_time,
                end_time=start_time + elapsed,
            ),
            url=raw.url or url,
        )

    def get(self, url: str, **kwargs) -> AugmentedResponse:
        return self.request("GET", url, **kwargs)

    def head(self, url: str, **kwargs) -> AugmentedResponse:
        return self.request("HEAD", url, **kwargs)

    def options(self, url: str, body: Any = None, **kwargs) -> AugmentedResponse:
        return self.request("OPTIONS", url, body=body, **kwargs)

    def post(self, url: str, body: Any = None, **kwargs) -> AugmentedResponse:
        return self.request("POST", url, body=body, **kwargs)

    def put(self, url: str, body: Any = None, **kwargs) -> AugmentedResponse:
        return self.request("PUT", url, body=body, **kwargs)

    def patch(self, url: str, body: Any = None, **kwargs) -> AugmentedResponse:
        return self.request("PATCH", url, body=body, **kwargs)

    def delete(self, url: str, body: Any = None, **kwargs) -> AugmentedResponse:
        return self.request("DELETE", url, body=body, **kwargs)

    # "del" is a keyword in Python
    del_ = delete

    def close(self) -> None:
        """Release the transport if this client created it; the pipeline stays shared"""
        if self._owns_transport:
            self._transport.close()


Http = HttpClientFacade
