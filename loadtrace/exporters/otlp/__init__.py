"""
OTLP/HTTP exporter backend
"""

from .encoder import encode_batch, encode_span, iter_spans
from .exporter import OTLPExporter

__all__ = [
    "OTLPExporter",
    "encode_batch",
    "encode_span",
    "iter_spans",
]
