"""
Tests for the tracing HTTP client
"""
import threading
from unittest.mock import MagicMock

import pytest
import requests

from loadtrace.client import AugmentedResponse, Http, HttpClientFacade, Transport, TransportResponse
from loadtrace.errors import ConfigurationError
from loadtrace.trace.context import TraceContext


class FakeTransport(Transport):
    """Transport answering every request with a canned response"""

    def __init__(self, status=200, body=b'{"ok": true}', error=None):
        self.status = status
        self.body = body
        self.error = error
        self.calls = []
        self.closed = False

    def request(self, method, url, headers, body=None, timeout=None):
        self.calls.append({"method": method, "url": url, "headers": dict(headers), "body": body, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return TransportResponse(status=self.status, headers={"Content-Type": "application/json"},
                                 body=self.body, url=url)

    def close(self):
        self.closed = True


def exported_spans(coordinator):
    for pipeline in coordinator.pipelines:
        pipeline.flush(2)
    return [span for pipeline in coordinator.pipelines for span in pipeline.backend.spans]


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client(make_config, transport, coordinator):
    return Http(make_config(), transport=transport, coordinator=coordinator)


class TestConstruction:
    """Test client construction"""

    def test_http_alias(self):
        assert Http is HttpClientFacade

    def test_from_mapping(self, transport, coordinator):
        client = Http({"exporter": "jaeger", "propagator": "b3"}, transport=transport, coordinator=coordinator)
        assert client.config.endpoint == "http://localhost:14268/api/traces"
        assert len(client.trace_id) == 32

    @pytest.mark.parametrize("options", [
        {"exporter": "otlp"},
        {"exporter": "otlp", "propagator": "carrier-pigeon"},
        {"exporter": "otlp", "propagator": "w3c", "endpoint": "collector:4318"},
    ])
    def test_invalid_config_raises(self, options, transport, coordinator):
        with pytest.raises(ConfigurationError):
            Http(options, transport=transport, coordinator=coordinator)

    def test_clients_share_pipeline(self, make_config, transport, coordinator):
        Http(make_config(), transport=transport, coordinator=coordinator)
        Http(make_config(propagator="b3"), transport=transport, coordinator=coordinator)
        assert len(coordinator.pipelines) == 1

    def test_each_client_roots_a_new_trace(self, make_config, transport, coordinator):
        first = Http(make_config(), transport=transport, coordinator=coordinator)
        second = Http(make_config(), transport=transport, coordinator=coordinator)
        assert first.trace_id != second.trace_id


class TestRequest:
    """Test traced requests"""

    def test_response_trace_id_matches_header(self, client, transport):
        res = client.get("http://shop.test/")

        assert isinstance(res, AugmentedResponse)
        assert res.status == 200
        traceparent = transport.calls[0]["headers"]["traceparent"]
        assert traceparent.split("-")[1] == res.trace_id
        assert res.request.headers["traceparent"] == traceparent
        assert res.trace_id == client.trace_id

    def test_response_fields(self, client):
        res = client.post("http://shop.test/cart", body=b"item=1", headers={"X-Id": "7"})
        assert res.request.method == "POST"
        assert res.request.url == "http://shop.test/cart"
        assert res.request.headers["X-Id"] == "7"
        assert res.json() == {"ok": True}
        assert res.timings.duration >= 0
        assert res.timings.end_time >= res.timings.start_time

    def test_span_recorded(self, client, coordinator):
        client.get("http://shop.test/", tags={"group": "::home"})

        spans = exported_spans(coordinator)
        assert len(spans) == 1
        span = spans[0]
        assert span.name == "HTTP GET"
        assert span.status_code == 200
        assert span.error is None
        assert span.context.trace_id_hex == client.trace_id
        assert span.context.parent_span_id is None
        assert span.attributes["http.method"] == "GET"
        assert span.attributes["http.url"] == "http://shop.test/"
        assert span.attributes["http.response_content_length"] == len(b'{"ok": true}')
        assert span.attributes["group"] == "::home"

    def test_requests_get_distinct_spans(self, client, coordinator):
        client.get("http://shop.test/a")
        client.get("http://shop.test/b")
        spans = exported_spans(coordinator)
        assert len({span.context.span_id for span in spans}) == 2
        assert {span.context.trace_id for span in spans} == {client.context.trace_id}

    def test_caller_propagation_header_replaced(self, client, transport):
        client.get("http://shop.test/", headers={"TraceParent": "00-stale", "Accept": "*/*"})
        headers = transport.calls[0]["headers"]
        assert "TraceParent" not in headers
        assert headers["traceparent"] != "00-stale"
        assert headers["Accept"] == "*/*"

    def test_client_tags(self, make_config, transport, coordinator):
        client = Http(make_config(), transport=transport, coordinator=coordinator,
                      tags={"scenario": "checkout"})
        client.get("http://shop.test/")
        assert exported_spans(coordinator)[0].attributes["scenario"] == "checkout"

    @pytest.mark.parametrize("verb, method", [
        ("get", "GET"),
        ("head", "HEAD"),
        ("options", "OPTIONS"),
        ("post", "POST"),
        ("put", "PUT"),
        ("patch", "PATCH"),
        ("delete", "DELETE"),
        ("del_", "DELETE"),
    ])
    def test_verbs(self, client, transport, verb, method):
        res = getattr(client, verb)("http://shop.test/")
        assert transport.calls[0]["method"] == method
        assert res.request.method == method

    def test_timeout_passed_to_transport(self, client, transport):
        client.get("http://shop.test/", timeout=3)
        assert transport.calls[0]["timeout"] == 3


class TestTransportErrors:
    """Test failed requests are recorded and re-raised"""

    def test_error_recorded_and_reraised(self, make_config, coordinator):
        error = requests.ConnectionError("connection refused")
        client = Http(make_config(), transport=FakeTransport(error=error), coordinator=coordinator)

        with pytest.raises(requests.ConnectionError) as excinfo:
            client.get("http://down.test/")
        assert excinfo.value is error

        spans = exported_spans(coordinator)
        assert len(spans) == 1
        assert spans[0].status_code is None
        assert spans[0].error == "ConnectionError: connection refused"


class TestParentContext:
    """Test nesting into an existing trace"""

    def test_parent_trace_context(self, make_config, transport, coordinator):
        parent = TraceContext.root()
        client = Http(make_config(), transport=transport, coordinator=coordinator, parent=parent)
        res = client.get("http://shop.test/")

        span = exported_spans(coordinator)[0]
        assert res.trace_id == parent.trace_id_hex
        assert span.context.parent_span_id == parent.span_id
        assert client.context is parent

    def test_parent_headers(self, make_config, transport, coordinator):
        inbound = {"traceparent": "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01"}
        client = Http(make_config(), transport=transport, coordinator=coordinator, parent=inbound)
        client.get("http://shop.test/")

        span = exported_spans(coordinator)[0]
        assert span.context.trace_id_hex == "0af7651916cd43dd8448eb211c80319c"
        assert span.context.parent_span_id_hex == "b7ad6b7169203331"

    def test_unusable_parent_headers_start_new_trace(self, make_config, transport, coordinator):
        client = Http(make_config(), transport=transport, coordinator=coordinator,
                      parent={"traceparent": "garbage"})
        client.get("http://shop.test/")
        span = exported_spans(coordinator)[0]
        assert span.context.trace_id_hex == client.trace_id
        assert span.context.parent_span_id is None


class TestFailOpen:
    """Test tracing problems never change the request outcome"""

    def test_request_after_shutdown(self, client, coordinator, transport):
        coordinator.shutdown(1)
        res = client.get("http://shop.test/")
        assert res.status == 200
        assert len(transport.calls) == 1

    def test_client_created_after_shutdown(self, make_config, transport, coordinator):
        coordinator.shutdown(1)
        client = Http(make_config(), transport=transport, coordinator=coordinator)
        assert client.get("http://shop.test/").status == 200

    def test_enqueue_failure_is_swallowed(self, client, coordinator):
        coordinator.pipelines[0].enqueue = MagicMock(side_effect=RuntimeError("broken"))
        res = client.get("http://shop.test/")
        assert res.status == 200

    def test_inject_failure_is_swallowed(self, client, transport):
        client._codec = MagicMock()
        client._codec.header_names = frozenset({"traceparent"})
        client._codec.inject.side_effect = RuntimeError("broken codec")
        res = client.get("http://shop.test/")
        assert res.status == 200
        assert "traceparent" not in transport.calls[0]["headers"]

    def test_untraced_request_has_empty_trace_id(self, client, transport, coordinator):
        client._recorder = MagicMock()
        client._recorder.start.side_effect = RuntimeError("broken recorder")
        res = client.get("http://shop.test/")
        assert res.status == 200
        assert res.trace_id == ""
        assert "traceparent" not in transport.calls[0]["headers"]
        assert exported_spans(coordinator) == []


class TestConcurrentCallers:
    """Test one client shared by many threads"""

    def test_shared_client(self, client, transport, coordinator):
        threads_count, per_thread = 16, 25
        responses = []
        errors = []
        lock = threading.Lock()

        def call():
            try:
                for i in range(per_thread):
                    res = client.get(f"http://shop.test/{i}")
                    with lock:
                        responses.append(res)
            except Exception as e:
                with lock:
                    errors.append(e)

        threads = [threading.Thread(target=call) for _ in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(10)

        assert errors == []
        assert len(responses) == threads_count * per_thread
        assert {res.trace_id for res in responses} == {client.trace_id}

        spans = exported_spans(coordinator)
        assert len(spans) == threads_count * per_thread
        assert len({span.context.span_id for span in spans}) == len(spans)

        sent = {call["headers"]["traceparent"].split("-")[2] for call in transport.calls}
        assert sent == {span.context.span_id_hex for span in spans}

        assert coordinator.shutdown(5)
        stats = coordinator.stats()
        assert stats.enqueued == threads_count * per_thread
        assert stats.enqueued == stats.exported + stats.dropped + stats.pending
        assert stats.pending == 0


class TestClose:

    def test_close_keeps_injected_transport(self, client, transport):
        client.close()
        assert not transport.closed

    def test_close_owned_transport(self, make_config, coordinator):
        client = Http(make_config(), coordinator=coordinator)
        client._transport = FakeTransport()
        client.close()
        assert client._transport.closed
