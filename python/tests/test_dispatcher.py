"""
Tests for the CloudEvent Dispatcher
===================================

Method allow-list, decode failure mapping, handler invocation and the
OpenTelemetry span recorded for each request.
"""

import io
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import pytest

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import SpanKind, StatusCode

import celistener.dispatcher as dispatcher_module
from celistener.config import ListenerConfig
from celistener.dispatcher import (
    EMPTY_BODY_MESSAGE,
    METHOD_NOT_IMPLEMENTED_MESSAGE,
    STRUCTURED_MODE_MESSAGE,
    Dispatcher,
    DispatchState,
    HttpResponse,
)
from celistener.encoder import encode
from celistener.errors import EncodeError, MissingRequiredAttribute, MalformedTimestamp


# ===================================================================
# Fixtures
# ===================================================================

@pytest.fixture
def exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracer_provider(exporter):
    """A real OTel TracerProvider exporting to memory."""
    provider = TracerProvider(resource=Resource.create({"service.name": "celistener-test"}))
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    yield provider
    provider.shutdown()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("CELISTENER_ALLOWED_METHODS", "CELISTENER_REQUIRE_BODY", "CELISTENER_REJECT_INVALID"):
        monkeypatch.delenv(name, raising=False)


@dataclass
class _FakeRequest:
    method: str = "POST"
    headers: dict = field(default_factory=dict)
    body: io.BytesIO = field(default_factory=io.BytesIO)


class _FakeResponse:
    def __init__(self):
        self.headers = []
        self.status = None
        self.body = b""
        self.errors = []

    def add_header(self, name, value):
        self.headers.append((name, value))

    def set_status(self, status):
        self.status = status

    def open_body(self):
        response = self

        class _Sink(io.BytesIO):
            def close(self):
                if not self.closed:
                    response.body += self.getvalue()
                super().close()

        return _Sink()

    def send_error(self, status, message):
        self.errors.append((status, message))


class _RecordingHandler:
    def __init__(self, side_effect=None):
        self.calls = []
        self.side_effect = side_effect

    def __call__(self, event, request, response):
        self.calls.append((event, request, response))
        if self.side_effect is not None:
            self.side_effect(event, request, response)


def _ce_headers(**overrides):
    headers = {
        "ce-id": "abc-1",
        "ce-source": "/test",
        "ce-specversion": "1.0",
        "ce-type": "example.event",
    }
    for name, value in overrides.items():
        name = name.replace("_", "-")
        if value is None:
            headers.pop(name, None)
        else:
            headers[name] = value
    return headers


def _post(body=b'{"k":1}', **header_overrides):
    return _FakeRequest("POST", _ce_headers(**header_overrides), io.BytesIO(body))


class _BrokenStream(io.RawIOBase):
    def readable(self):
        return True

    def read(self, size=-1):
        raise TimeoutError("read timed out")


# ===================================================================
# Method handling
# ===================================================================

class TestMethods:

    def test_fake_response_satisfies_protocol(self):
        assert isinstance(_FakeResponse(), HttpResponse)

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE", "post"])
    def test_non_post_rejected_with_501(self, method):
        handler = _RecordingHandler()
        resp = _FakeResponse()
        state = Dispatcher(handler).dispatch(_FakeRequest(method, _ce_headers()), resp)

        assert state is DispatchState.AWAITING_REQUEST
        assert resp.errors == [(501, METHOD_NOT_IMPLEMENTED_MESSAGE)]
        assert handler.calls == []

    def test_decoder_not_invoked_for_get(self, monkeypatch):
        decode_calls = []
        monkeypatch.setattr(dispatcher_module, "decode", lambda *a: decode_calls.append(a))
        request = _FakeRequest("GET", _ce_headers(), io.BytesIO(b"payload"))

        Dispatcher(_RecordingHandler()).dispatch(request, _FakeResponse())

        assert decode_calls == []
        assert request.body.tell() == 0

    def test_configured_methods_allowed(self):
        handler = _RecordingHandler()
        config = ListenerConfig(allowed_methods=("POST", "PUT"))
        request = _post()
        request.method = "PUT"

        state = Dispatcher(handler, config).dispatch(request, _FakeResponse())

        assert state is DispatchState.HANDLER_INVOKED
        assert len(handler.calls) == 1

    def test_check_method_raises(self):
        from celistener.errors import UnsupportedMethod
        with pytest.raises(UnsupportedMethod) as exc_info:
            Dispatcher(_RecordingHandler()).check_method("PATCH")
        assert exc_info.value.method == "PATCH"


# ===================================================================
# Successful dispatch
# ===================================================================

class TestDispatch:

    def test_handler_invoked_once_with_event_and_handles(self):
        handler = _RecordingHandler()
        request = _post(ce_myext="42")
        resp = _FakeResponse()

        state = Dispatcher(handler).dispatch(request, resp)

        assert state is DispatchState.HANDLER_INVOKED
        assert len(handler.calls) == 1
        event, got_request, got_response = handler.calls[0]
        assert event.id == "abc-1"
        assert event.extensions == {"myext": "42"}
        assert event.data == b'{"k":1}'
        assert got_request is request
        assert got_response is resp
        assert resp.errors == []

    def test_empty_body_allowed_by_default(self):
        handler = _RecordingHandler()
        Dispatcher(handler).dispatch(_post(body=b""), _FakeResponse())
        assert handler.calls[0][0].data is None

    def test_handler_can_reply_with_event(self):
        def reply(event, request, response):
            encode(event.replace(type="example.reply"), response)

        resp = _FakeResponse()
        Dispatcher(_RecordingHandler(reply)).dispatch(_post(), resp)

        assert resp.status == 200
        assert ("ce-type", "example.reply") in resp.headers
        assert resp.body == b'{"k":1}'

    def test_handler_reply_without_data_is_204(self):
        def reply(event, request, response):
            encode(event.replace(data=None), response)

        resp = _FakeResponse()
        Dispatcher(_RecordingHandler(reply)).dispatch(_post(), resp)
        assert resp.status == 204
        assert resp.body == b""

    def test_handler_errors_propagate(self):
        def fail(event, request, response):
            raise EncodeError("client went away")

        with pytest.raises(EncodeError):
            Dispatcher(_RecordingHandler(fail)).dispatch(_post(), _FakeResponse())

    def test_concurrent_requests_are_isolated(self):
        seen = []
        dispatcher = Dispatcher(lambda ev, req, resp: seen.append((ev.id, ev.data)))

        def run(i):
            dispatcher.dispatch(_post(body=f"body-{i}".encode(), ce_id=f"id-{i}"), _FakeResponse())

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(run, range(50)))

        assert sorted(seen) == sorted((f"id-{i}", f"body-{i}".encode()) for i in range(50))


# ===================================================================
# Decode failures
# ===================================================================

class TestDecodeFailures:

    def test_body_read_error_is_400(self):
        handler = _RecordingHandler()
        resp = _FakeResponse()
        request = _FakeRequest("POST", _ce_headers(), _BrokenStream())

        state = Dispatcher(handler).dispatch(request, resp)

        assert state is DispatchState.DECODING
        assert resp.errors == [(400, EMPTY_BODY_MESSAGE)]
        assert handler.calls == []

    def test_malformed_content_length_is_400(self):
        resp = _FakeResponse()
        Dispatcher(_RecordingHandler()).dispatch(_post(content_length="lots"), resp)
        assert resp.errors == [(400, EMPTY_BODY_MESSAGE)]

    def test_structured_mode_is_415(self):
        handler = _RecordingHandler()
        resp = _FakeResponse()
        request = _post(content_type="application/cloudevents+json")

        state = Dispatcher(handler).dispatch(request, resp)

        assert state is DispatchState.DECODING
        assert resp.errors == [(415, STRUCTURED_MODE_MESSAGE)]
        assert handler.calls == []

    def test_missing_attribute_propagates_by_default(self):
        handler = _RecordingHandler()
        resp = _FakeResponse()
        with pytest.raises(MissingRequiredAttribute) as exc_info:
            Dispatcher(handler).dispatch(_post(ce_type=None), resp)
        assert exc_info.value.attribute == "type"
        assert handler.calls == []
        assert resp.errors == []

    def test_malformed_time_propagates_by_default(self):
        with pytest.raises(MalformedTimestamp):
            Dispatcher(_RecordingHandler()).dispatch(_post(ce_time="soon"), _FakeResponse())

    def test_invalid_event_rejected_when_configured(self):
        handler = _RecordingHandler()
        resp = _FakeResponse()
        config = ListenerConfig(reject_invalid_events=True)

        state = Dispatcher(handler, config).dispatch(_post(ce_id=None), resp)

        assert state is DispatchState.DECODING
        assert len(resp.errors) == 1
        status, message = resp.errors[0]
        assert status == 400
        assert "id" in message
        assert handler.calls == []

    def test_require_body(self):
        handler = _RecordingHandler()
        resp = _FakeResponse()
        config = ListenerConfig(require_body=True)

        state = Dispatcher(handler, config).dispatch(_post(body=b""), resp)

        assert state is DispatchState.DECODING
        assert resp.errors == [(400, EMPTY_BODY_MESSAGE)]
        assert handler.calls == []

    def test_require_body_satisfied(self):
        handler = _RecordingHandler()
        config = ListenerConfig(require_body=True)
        Dispatcher(handler, config).dispatch(_post(body=b"x"), _FakeResponse())
        assert len(handler.calls) == 1


# ===================================================================
# Tracing
# ===================================================================

class TestTracing:

    def test_span_per_request(self, tracer_provider, exporter):
        dispatcher = Dispatcher(_RecordingHandler(), tracer_provider=tracer_provider)
        dispatcher.dispatch(_post(ce_subject="order-7"), _FakeResponse())

        (span,) = exporter.get_finished_spans()
        assert span.name == "cloudevent.dispatch"
        assert span.kind == SpanKind.SERVER
        assert span.attributes["http.request.method"] == "POST"
        assert span.attributes["cloudevents.event_id"] == "abc-1"
        assert span.attributes["cloudevents.event_source"] == "/test"
        assert span.attributes["cloudevents.event_spec_version"] == "1.0"
        assert span.attributes["cloudevents.event_type"] == "example.event"
        assert span.attributes["cloudevents.event_subject"] == "order-7"
        assert span.status.status_code != StatusCode.ERROR

    def test_rejected_method_marks_span(self, tracer_provider, exporter):
        dispatcher = Dispatcher(_RecordingHandler(), tracer_provider=tracer_provider)
        dispatcher.dispatch(_FakeRequest("GET"), _FakeResponse())

        (span,) = exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        assert span.attributes["http.response.status_code"] == 501
        assert "cloudevents.event_id" not in span.attributes

    def test_propagated_failure_recorded(self, tracer_provider, exporter):
        dispatcher = Dispatcher(_RecordingHandler(), tracer_provider=tracer_provider)
        with pytest.raises(MissingRequiredAttribute):
            dispatcher.dispatch(_post(ce_source=None), _FakeResponse())

        (span,) = exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        assert any(e.name == "exception" for e in span.events)

    def test_traceparent_extension_linked(self, tracer_provider, exporter):
        traceparent = "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"
        dispatcher = Dispatcher(_RecordingHandler(), tracer_provider=tracer_provider)
        dispatcher.dispatch(_post(ce_traceparent=traceparent), _FakeResponse())

        (span,) = exporter.get_finished_spans()
        assert len(span.links) == 1
        link_ctx = span.links[0].context
        assert link_ctx.trace_id == 0x4BF92F3577B34DA6A3CE929D0E0E4736
        assert link_ctx.span_id == 0x00F067AA0BA902B7

    def test_invalid_traceparent_not_linked(self, tracer_provider, exporter):
        dispatcher = Dispatcher(_RecordingHandler(), tracer_provider=tracer_provider)
        dispatcher.dispatch(_post(ce_traceparent="garbage"), _FakeResponse())

        (span,) = exporter.get_finished_spans()
        assert len(span.links) == 0

    def test_custom_tracer_name(self, tracer_provider, exporter):
        config = ListenerConfig(tracer_name="orders-listener")
        Dispatcher(_RecordingHandler(), config, tracer_provider=tracer_provider).dispatch(
            _post(), _FakeResponse()
        )
        (span,) = exporter.get_finished_spans()
        assert span.instrumentation_scope.name == "orders-listener"
