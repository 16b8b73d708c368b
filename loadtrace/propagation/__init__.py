"""
Trace context propagation

Codecs that write a TraceContext into outgoing request headers and read it
back from inbound ones. All codecs are stateless and safe to share.
"""

from .codec_factory import CodecFactory, create_codec
from .codec_interface import PropagatorCodec
from .codecs import B3MultiCodec, B3SingleCodec, JaegerCodec, W3CCodec, header_values

__all__ = [
    "CodecFactory",
    "create_codec",
    "PropagatorCodec",
    "B3MultiCodec",
    "B3SingleCodec",
    "JaegerCodec",
    "W3CCodec",
    "header_values",
]
