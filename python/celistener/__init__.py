"""
celistener: CloudEvents over HTTP, binary content mode
======================================================

Receive CloudEvents posted to an HTTP endpoint, hand them to your code,
and answer with a CloudEvent of your own.

Quick Start::

    from wsgiref.simple_server import make_server
    from celistener import CloudEventListener

    def on_event(event, request, response):
        print(event.id, event.type, event.extensions)
        listener.send_cloud_event(event.replace(type="com.example.ack"), response)

    listener = CloudEventListener(on_event)
    make_server("", 8080, listener).serve_forever()

What celistener does:
  - Decodes ``ce-*`` headers + raw body into an immutable ``CloudEvent``
  - Encodes a ``CloudEvent`` back into headers + body (or 204 when empty)
  - Accepts POST only by default; answers 400 / 415 / 501 on bad requests
  - Records every request as an OpenTelemetry span, linked to the
    producer's trace when the event carries ``traceparent``

What celistener does NOT do:
  - Structured (JSON) or batch content mode (rejected with 415)
  - AMQP, Kafka or MQTT bindings
  - Retries or delivery guarantees
"""

# ── Event model ───────────────────────────────────────────────────────

from celistener.event import CloudEvent, parse_time, format_time
from celistener.attributes import CloudEventAttributes, SpanAttributes

# ── Codec ─────────────────────────────────────────────────────────────

from celistener.body import read_body
from celistener.decoder import decode, is_structured
from celistener.encoder import ResponseWriter, encode, to_headers

# ── Dispatch ──────────────────────────────────────────────────────────

from celistener.config import ListenerConfig
from celistener.dispatcher import (
    Dispatcher,
    DispatchState,
    HttpRequest,
    HttpResponse,
)
from celistener.wsgi import CloudEventListener

# ── Trace context ─────────────────────────────────────────────────────

from celistener.tracing import extract_context, inject_context

# ── Errors ────────────────────────────────────────────────────────────

from celistener.errors import (
    CloudEventError,
    DecodeError,
    UnsupportedMode,
    MalformedTimestamp,
    MissingRequiredAttribute,
    UnsupportedSpecVersion,
    MalformedContentLength,
    BodyReadError,
    EmptyBody,
    EncodeError,
    ProtocolError,
    UnsupportedMethod,
)

__version__ = "1.0.0"
__all__ = [
    # ── Event model ──
    "CloudEvent",
    "CloudEventAttributes",
    "SpanAttributes",
    "parse_time",
    "format_time",
    # ── Codec ──
    "read_body",
    "decode",
    "is_structured",
    "ResponseWriter",
    "encode",
    "to_headers",
    # ── Dispatch ──
    "ListenerConfig",
    "Dispatcher",
    "DispatchState",
    "HttpRequest",
    "HttpResponse",
    "CloudEventListener",
    # ── Trace context ──
    "extract_context",
    "inject_context",
    # ── Errors ──
    "CloudEventError",
    "DecodeError",
    "UnsupportedMode",
    "MalformedTimestamp",
    "MissingRequiredAttribute",
    "UnsupportedSpecVersion",
    "MalformedContentLength",
    "BodyReadError",
    "EmptyBody",
    "EncodeError",
    "ProtocolError",
    "UnsupportedMethod",
]
