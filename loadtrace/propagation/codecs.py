"""
Propagation codecs

Thin adapters between TraceContext and the OpenTelemetry text-map
propagators:
- w3c: traceparent (W3C Trace Context)
- b3: single "b3" header (Zipkin)
- b3multi: X-B3-TraceId / X-B3-SpanId / X-B3-Sampled
- jaeger: uber-trace-id
"""

import logging
from typing import FrozenSet, Iterable, List, Mapping, MutableMapping, Optional

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.propagators.b3 import B3MultiFormat, B3SingleFormat
from opentelemetry.propagators.jaeger import JaegerPropagator
from opentelemetry.propagators.textmap import Getter, TextMapPropagator
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from loadtrace.propagation.codec_interface import PropagatorCodec
from loadtrace.trace.context import TraceContext

logger = logging.getLogger(__name__)


class CaseInsensitiveGetter(Getter):
    """Header getter that ignores key case, as HTTP does"""

    def get(self, carrier: Mapping[str, str], key: str) -> Optional[List[str]]:
        wanted = key.lower()
        for name, value in carrier.items():
            if name.lower() == wanted:
                if isinstance(value, str):
                    return [value]
                return list(value)
        return None

    def keys(self, carrier: Mapping[str, str]) -> List[str]:
        return list(carrier.keys())


_getter = CaseInsensitiveGetter()


class OpenTelemetryCodec(PropagatorCodec):
    """Codec backed by a stateless OpenTelemetry TextMapPropagator"""

    def __init__(self, propagator: TextMapPropagator):
        self._propagator = propagator

    @property
    def header_names(self) -> FrozenSet[str]:
        return frozenset(self._propagator.fields)

    def inject(self, context: TraceContext, headers: MutableMapping[str, str]) -> MutableMapping[str, str]:
        otel_context = trace.set_span_in_context(
            trace.NonRecordingSpan(context.to_span_context()), Context()
        )
        self._propagator.inject(headers, context=otel_context)
        return headers

    def extract(self, headers: Mapping[str, str]) -> Optional[TraceContext]:
        if not headers:
            return None
        try:
            otel_context = self._propagator.extract(headers, context=Context(), getter=_getter)
        except Exception as e:
            logger.debug(f"Malformed {self.kind} propagation headers ignored: {str(e)}")
            return None
        span_context = trace.get_current_span(otel_context).get_span_context()
        return TraceContext.from_span_context(span_context)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(headers={sorted(self.header_names)})"


class W3CCodec(OpenTelemetryCodec):
    kind = "w3c"

    def __init__(self):
        super().__init__(TraceContextTextMapPropagator())


class B3SingleCodec(OpenTelemetryCodec):
    kind = "b3"

    def __init__(self):
        super().__init__(B3SingleFormat())


class B3MultiCodec(OpenTelemetryCodec):
    kind = "b3multi"

    def __init__(self):
        super().__init__(B3MultiFormat())


class JaegerCodec(OpenTelemetryCodec):
    kind = "jaeger"

    def __init__(self):
        super().__init__(JaegerPropagator())


def header_values(headers: Mapping[str, str], names: Iterable[str]) -> Mapping[str, str]:
    """Pick the given headers (case-insensitive) out of a header mapping"""
    wanted = {name.lower() for name in names}
    return {name: value for name, value in headers.items() if name.lower() in wanted}
