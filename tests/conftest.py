"""
Shared fixtures: local HTTP servers and in-memory exporter backends
"""

import threading
import time
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, List

import pytest

from loadtrace.config import ExporterConfig, RetryPolicy
from loadtrace.exporters.exporter_interface import ExportResult
from loadtrace.pipeline.shutdown import ShutdownCoordinator
from loadtrace.trace.span import SpanRecorder


@dataclass
class RecordedRequest:
    method: str
    path: str
    headers: Dict[str, str]
    body: bytes


class RecordingServer:
    """HTTP server on 127.0.0.1 that records every request it receives"""

    def __init__(self, status: int = 200, body: bytes = b"ok"):
        self.status = status
        self.body = body
        self.requests: List[RecordedRequest] = []
        self._lock = threading.Lock()
        self._httpd = ThreadingHTTPServer(("127.0.0.1", 0), self._handler_class())
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)

    def _handler_class(self):
        server = self

        class Handler(BaseHTTPRequestHandler):
            def _handle(self):
                length = int(self.headers.get("Content-Length") or 0)
                body = self.rfile.read(length) if length else b""
                with server._lock:
                    server.requests.append(RecordedRequest(
                        method=self.command,
                        path=self.path,
                        headers=dict(self.headers.items()),
                        body=body,
                    ))
                self.send_response(server.status)
                self.send_header("Content-Type", "text/plain")
                self.send_header("Content-Length", str(len(server.body)))
                self.end_headers()
                if self.command != "HEAD":
                    self.wfile.write(server.body)

            do_GET = do_POST = do_PUT = do_PATCH = do_DELETE = do_HEAD = do_OPTIONS = _handle

            def log_message(self, format, *args):
                pass

        return Handler

    @property
    def url(self) -> str:
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}"

    def start(self):
        self._thread.start()

    def stop(self):
        self._httpd.shutdown()
        self._httpd.server_close()


class RecordingBackend:
    """In-memory exporter backend returning scripted results"""

    kind = "recording"

    def __init__(self, results=None):
        self.results = list(results or [])
        self.batches = []
        self.close_calls = 0
        self.timeouts = []
        self._lock = threading.Lock()

    def send(self, batch, timeout=None):
        with self._lock:
            self.batches.append(list(batch))
            self.timeouts.append(timeout)
            if self.results:
                return self.results.pop(0)
        return ExportResult.SUCCESS

    def close(self):
        self.close_calls += 1

    @property
    def spans(self):
        with self._lock:
            return [span for batch in self.batches for span in batch]

    def __repr__(self):
        return "RecordingBackend()"


class GatedBackend(RecordingBackend):
    """Backend whose send() blocks until the gate opens"""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.gate = threading.Event()

    def send(self, batch, timeout=None):
        self.entered.set()
        self.gate.wait(10)
        return super().send(batch, timeout)


def wait_until(predicate, timeout=2.0, interval=0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture(autouse=True)
def no_proxy(monkeypatch):
    """Keep requests to local test servers away from any configured proxy"""
    for var in ("HTTP_PROXY", "http_proxy", "HTTPS_PROXY", "https_proxy", "ALL_PROXY", "all_proxy"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")


@pytest.fixture
def collector():
    """Local trace collector accepting every export"""
    server = RecordingServer(status=200, body=b"")
    server.start()
    yield server
    server.stop()


@pytest.fixture
def target():
    """Local system under test"""
    server = RecordingServer(status=200, body=b'{"hello": "world"}')
    server.start()
    yield server
    server.stop()


@pytest.fixture
def make_config():
    """Build configs with fast batching and retries for tests"""
    def _make(**overrides):
        options = {
            "exporter": "otlp",
            "propagator": "w3c",
            "endpoint": "http://127.0.0.1:4318",
            "batch_max_delay": 0.05,
            "retry_policy": RetryPolicy(max_attempts=2, initial_backoff=0.01, max_backoff=0.02, jitter=0.0),
            "export_timeout": 2.0,
        }
        options.update(overrides)
        return ExporterConfig(**options)
    return _make


@pytest.fixture
def coordinator():
    """Coordinator whose pipelines export into RecordingBackends"""
    coord = ShutdownCoordinator(backend_factory=lambda config: RecordingBackend())
    yield coord
    coord.shutdown(timeout=1)


@pytest.fixture
def finished_span():
    """Build finished spans the way the HTTP client does"""
    recorder = SpanRecorder()

    def _make(status=200, error=None, parent=None, url="http://example.test/", tags=None):
        attributes = {"http.method": "GET", "http.url": url}
        attributes.update(tags or {})
        span = recorder.start(parent, "HTTP GET", attributes)
        return recorder.finish(span, status_code=None if error else status, error=error)

    return _make


@pytest.fixture
def make_backend():
    """Build RecordingBackends, optionally with scripted send() results"""
    return RecordingBackend


@pytest.fixture
def gated_backend():
    backend = GatedBackend()
    yield backend
    backend.gate.set()


@pytest.fixture
def eventually():
    """Poll a predicate until it holds or a timeout elapses"""
    return wait_until
