"""
Traced HTTP client

- http: the Http facade scripts use
- transport: pluggable transport (requests by default)
"""

from .http import AugmentedResponse, Http, HttpClientFacade, RequestInfo, Timings
from .transport import RequestsTransport, Transport, TransportResponse

__all__ = [
    "AugmentedResponse",
    "Http",
    "HttpClientFacade",
    "RequestInfo",
    "Timings",
    "RequestsTransport",
    "Transport",
    "TransportResponse",
]
