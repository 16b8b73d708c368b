"""
crocospans request-metadata exporter backend
"""

from .exporter import CrocospansExporter, encode_batch, encode_request

__all__ = [
    "CrocospansExporter",
    "encode_batch",
    "encode_request",
]
