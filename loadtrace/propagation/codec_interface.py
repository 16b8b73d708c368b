"""
Propagation codec interface

Defines the interface all propagation codecs (W3C, B3, Jaeger) implement, so
the HTTP facade does not depend on a particular header format.
"""

import abc
from typing import FrozenSet, Mapping, MutableMapping, Optional

from loadtrace.trace.context import TraceContext


class PropagatorCodec(abc.ABC):
    """Encodes/decodes a TraceContext into/out of HTTP headers.

    Implementations hold no mutable state and may be shared between threads.
    """

    kind: str = ""

    @property
    @abc.abstractmethod
    def header_names(self) -> FrozenSet[str]:
        """Names of the headers this codec writes"""
        pass

    @abc.abstractmethod
    def inject(self, context: TraceContext, headers: MutableMapping[str, str]) -> MutableMapping[str, str]:
        """Write the wire representation of context into headers

        Args:
            context: Context to propagate
            headers: Mutable header mapping, modified in place

        Returns:
            The same headers mapping
        """
        pass

    @abc.abstractmethod
    def extract(self, headers: Mapping[str, str]) -> Optional[TraceContext]:
        """Parse an inbound representation

        Args:
            headers: Header mapping; lookup is case-insensitive

        Returns:
            TraceContext, or None when the headers are absent or malformed
        """
        pass
