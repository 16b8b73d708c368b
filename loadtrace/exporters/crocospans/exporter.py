"""
crocospans exporter backend

Sends one metadata record per traced request (test run, group, scenario,
trace id, URL, method, status, duration) so a backend can join load-test
results with the traces the system under test produced.
"""

import json
import logging
import random
from typing import Any, Dict, List, Optional, Sequence

import requests

from loadtrace.config import ExporterConfig
from loadtrace.exporters.exporter_interface import ExporterBackend
from loadtrace.trace.span import Span

logger = logging.getLogger(__name__)

# Range generated test run ids are drawn from
TEST_RUN_ID_RANGE = (10000, 99999)


def new_test_run_id() -> int:
    return random.randrange(*TEST_RUN_ID_RANGE)


def encode_request(span: Span, test_run_id: int) -> Dict[str, Any]:
    attributes = span.attributes
    return {
        "testRunID": test_run_id,
        "group": attributes.get("group", ""),
        "scenario": attributes.get("scenario", ""),
        "traceID": span.context.trace_id_hex,
        "spanID": span.context.span_id_hex,
        "httpURL": attributes.get("http.url", ""),
        "httpMethod": attributes.get("http.method", ""),
        "httpStatusCode": span.status_code or 0,
        "httpDuration": span.duration,
        "startTimeUnixNano": span.start_time,
        "endTimeUnixNano": span.end_time,
        "error": span.error,
    }


def encode_batch(batch: Sequence[Span], test_run_id: int) -> Dict[str, Any]:
    requests_: List[Dict[str, Any]] = [encode_request(span, test_run_id) for span in batch]
    return {"count": len(requests_), "requests": requests_}


class CrocospansExporter(ExporterBackend):
    """Request-metadata exporter backend

    Without a configured test_run_id, one is generated per backend so records
    of separate runs stay apart.
    """

    kind = "crocospans"
    content_type = "application/json"

    def __init__(self, config: ExporterConfig, session: Optional[requests.Session] = None):
        super().__init__(config, session)
        if config.org_id:
            self._session.headers["X-Scope-OrgID"] = config.org_id
        if config.test_run_id is not None:
            self.test_run_id = config.test_run_id
        else:
            self.test_run_id = new_test_run_id()
        logger.info(f"crocospans test run id: {self.test_run_id}, org id: {config.org_id or '-'}")

    def encode(self, batch: Sequence[Span]) -> bytes:
        document = encode_batch(batch, self.test_run_id)
        return json.dumps(document, separators=(",", ":")).encode("utf-8")
