"""
Jaeger exporter backend
"""

from .encoder import deserialize_batch, encode_batch, encode_span, serialize_batch
from .exporter import JaegerExporter

__all__ = [
    "JaegerExporter",
    "deserialize_batch",
    "encode_batch",
    "encode_span",
    "serialize_batch",
]
