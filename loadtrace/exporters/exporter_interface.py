"""
Exporter backend interface

Defines the interface all exporter backends (OTLP, Jaeger, crocospans)
implement. The base class owns the HTTP session, result classification and
the unhealthy/cooldown state; subclasses only provide the wire encoding, so a
new backend kind never requires changes to the export pipeline.
"""

import abc
import logging
import threading
import time
from enum import Enum
from typing import Dict, Optional, Sequence

import requests

from loadtrace.config import ExporterConfig
from loadtrace.telemetry.metrics import EXPORT_LATENCY, record_latency
from loadtrace.trace.span import Span
from loadtrace._version import __version__

logger = logging.getLogger(__name__)

# Status codes worth another attempt; other 4xx are not
RETRYABLE_STATUS_CODES = frozenset({408, 429})
# Status codes that mean the endpoint or the credentials are wrong
UNHEALTHY_STATUS_CODES = frozenset({401, 403, 404, 405})
# requests rejects a zero timeout
MIN_SEND_TIMEOUT = 0.01


class ExportResult(Enum):
    """Outcome of sending one batch"""
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    FATAL_FAILURE = "fatal_failure"


def span_failed(span: Span) -> bool:
    """Whether a span should be reported with an error status"""
    return span.error is not None or (span.status_code is not None and span.status_code >= 400)


class ExporterBackend(abc.ABC):
    """Base class for exporter backends.

    send() never raises: every outcome is mapped onto an ExportResult. After a
    fatal failure the backend is unhealthy for `unhealthy_cooldown` seconds and
    fails fast without touching the network.
    """

    kind: str = ""
    content_type: str = "application/json"

    def __init__(self, config: ExporterConfig, session: Optional[requests.Session] = None):
        """Initialize the backend

        Args:
            config: Exporter configuration
            session: HTTP session to use, a new requests.Session when omitted
        """
        self.config = config
        self.endpoint = self._resolve_endpoint(config.endpoint)
        self.timeout = config.export_timeout
        self.cooldown = config.unhealthy_cooldown

        self._session = session or requests.Session()
        self._session.headers.update(self._default_headers())
        self._auth = (config.username, config.password or "") if config.username else None

        self._unhealthy_until = 0.0
        self._state_lock = threading.Lock()
        self._closed = False

        logger.info(f"{self.kind} exporter configured, endpoint: {self.endpoint}")

    def _resolve_endpoint(self, endpoint: str) -> str:
        return endpoint

    def _default_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": self.content_type,
            "User-Agent": f"loadtrace/{__version__}",
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        headers.update(self.config.headers)
        return headers

    @abc.abstractmethod
    def encode(self, batch: Sequence[Span]) -> bytes:
        """Encode a batch into the request body the collector expects

        Args:
            batch: Finished spans

        Returns:
            bytes: Request body
        """
        pass

    def _on_success(self, response: requests.Response, batch: Sequence[Span]) -> None:
        """Hook for backends that inspect successful responses"""
        pass

    @property
    def healthy(self) -> bool:
        return time.monotonic() >= self._unhealthy_until

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, batch: Sequence[Span], timeout: Optional[float] = None) -> ExportResult:
        """Encode and transmit one batch

        Args:
            batch: Finished spans
            timeout: Upper bound for this call in seconds; the configured
                export timeout applies when it is lower or when omitted

        Returns:
            ExportResult: SUCCESS, RETRYABLE_FAILURE or FATAL_FAILURE
        """
        if self._closed:
            logger.warning(f"{self.kind} exporter is closed, batch of {len(batch)} spans not sent")
            return ExportResult.FATAL_FAILURE
        if not batch:
            return ExportResult.SUCCESS
        if not self.healthy:
            logger.debug(f"{self.kind} exporter unhealthy, failing batch of {len(batch)} spans fast")
            return ExportResult.FATAL_FAILURE

        try:
            payload = self.encode(batch)
        except Exception as e:
            logger.error(f"Failed to encode batch of {len(batch)} spans for {self.kind}: {str(e)}")
            return ExportResult.FATAL_FAILURE

        send_timeout = self.timeout
        if timeout is not None:
            send_timeout = min(self.timeout, max(timeout, MIN_SEND_TIMEOUT))

        start_time = time.time()
        try:
            response = self._session.post(
                self.endpoint,
                data=payload,
                timeout=send_timeout,
                auth=self._auth,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning(f"Failed to send batch to {self.endpoint}: {str(e)}")
            return ExportResult.RETRYABLE_FAILURE
        except requests.RequestException as e:
            return self._mark_unhealthy(f"request to {self.endpoint} failed: {str(e)}")
        finally:
            latency_ms = (time.time() - start_time) * 1000
            record_latency(EXPORT_LATENCY, latency_ms, {"exporter": self.kind})

        return self._classify(response, batch)

    def _classify(self, response: requests.Response, batch: Sequence[Span]) -> ExportResult:
        status = response.status_code
        if 200 <= status < 300:
            self._on_success(response, batch)
            logger.debug(f"Exported {len(batch)} spans to {self.endpoint}")
            return ExportResult.SUCCESS

        body = response.text[:200] if response.text else ""
        if status in RETRYABLE_STATUS_CODES or status >= 500:
            logger.warning(f"Collector at {self.endpoint} returned HTTP {status}, will retry: {body}")
            return ExportResult.RETRYABLE_FAILURE
        if status in UNHEALTHY_STATUS_CODES:
            return self._mark_unhealthy(f"collector rejected request with HTTP {status}: {body}")

        logger.error(f"Collector at {self.endpoint} rejected batch of {len(batch)} spans with HTTP {status}: {body}")
        return ExportResult.FATAL_FAILURE

    def _mark_unhealthy(self, reason: str) -> ExportResult:
        with self._state_lock:
            self._unhealthy_until = time.monotonic() + self.cooldown
        logger.error(f"{self.kind} exporter marked unhealthy for {self.cooldown:.1f}s: {reason}")
        return ExportResult.FATAL_FAILURE

    def close(self) -> None:
        """Release the HTTP session; further sends fail fast"""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
        self._session.close()
        logger.info(f"{self.kind} exporter closed")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(endpoint={self.endpoint!r})"
