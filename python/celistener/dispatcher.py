"""
CloudEvent Dispatcher
=====================

Sits between a host HTTP server and a user handler. For every request it:

1. Checks the method against the configured allow-list (501 otherwise).
2. Decodes the binary-mode CloudEvent.
3. Invokes ``handler(event, request, response)`` exactly once.

Recovered failures answer the request directly:

- body read errors and malformed Content-Length: 400 "Empty body in request"
- structured content mode: 415
- invalid events: propagated to the host, or 400 with
  ``ListenerConfig(reject_invalid_events=True)``

Each request runs inside an OpenTelemetry span carrying the CloudEvents
semantic-convention attributes. A Dispatcher holds no per-request state
and can serve concurrent requests from many threads.

Usage:
    from celistener import Dispatcher, encode

    def on_event(event, request, response):
        encode(event.replace(type="com.example.ack", data=None), response)

    dispatcher = Dispatcher(on_event)
    dispatcher.dispatch(request, response)
"""

from __future__ import annotations

import enum
import logging
from typing import Any, BinaryIO, Callable, Mapping, Optional, Protocol, runtime_checkable

from opentelemetry import trace
from opentelemetry.trace import Span, SpanKind, StatusCode

from celistener.attributes import SpanAttributes
from celistener.config import ListenerConfig
from celistener.decoder import decode
from celistener.encoder import ResponseWriter
from celistener.errors import (
    BodyReadError,
    DecodeError,
    EmptyBody,
    MalformedContentLength,
    UnsupportedMethod,
    UnsupportedMode,
)
from celistener.event import CloudEvent
from celistener.tracing import extract_context

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_UNSUPPORTED_MEDIA_TYPE = 415
HTTP_NOT_IMPLEMENTED = 501

EMPTY_BODY_MESSAGE = "Empty body in request"
STRUCTURED_MODE_MESSAGE = "Structured content mode not supported"
METHOD_NOT_IMPLEMENTED_MESSAGE = "Method not implemented"

SPAN_NAME = "cloudevent.dispatch"


@runtime_checkable
class HttpRequest(Protocol):
    """Request handle passed to the dispatcher and on to the handler."""

    method: str
    headers: Mapping[str, str]
    body: BinaryIO


@runtime_checkable
class HttpResponse(ResponseWriter, Protocol):
    """Response handle: a ResponseWriter that can also send error pages."""

    def send_error(self, status: int, message: str) -> None:
        ...


EventHandler = Callable[[CloudEvent, Any, Any], None]


class DispatchState(enum.Enum):
    """Furthest stage a request reached before the dispatcher returned."""

    AWAITING_REQUEST = "awaiting_request"
    DECODING = "decoding"
    HANDLER_INVOKED = "handler_invoked"


class Dispatcher:
    """
    Routes decoded CloudEvents from HTTP requests to a handler.

    Args:
        handler: Called as ``handler(event, request, response)`` once per
            successfully decoded request. May call ``encode`` on the
            response zero or one times. Exceptions it raises propagate.
        config: Listener configuration. Defaults to ``ListenerConfig()``.
        tracer_provider: Optional OTel TracerProvider; the global one is
            used when omitted.
    """

    def __init__(
        self,
        handler: EventHandler,
        config: Optional[ListenerConfig] = None,
        *,
        tracer_provider: Optional[trace.TracerProvider] = None,
    ):
        self.handler = handler
        self.config = config or ListenerConfig()
        self._tracer = trace.get_tracer(
            self.config.tracer_name, "1.0.0", tracer_provider=tracer_provider
        )

    def check_method(self, method: str) -> None:
        """Raise UnsupportedMethod unless ``method`` is allowed."""
        if method not in self.config.allowed_methods:
            raise UnsupportedMethod(method)

    def read_event(self, request: HttpRequest) -> CloudEvent:
        """Decode the request, enforcing ``require_body`` when configured."""
        event = decode(request.headers, request.body)
        if self.config.require_body and event.data is None:
            raise EmptyBody(EMPTY_BODY_MESSAGE)
        return event

    def dispatch(self, request: HttpRequest, response: HttpResponse) -> DispatchState:
        """
        Handle one HTTP request.

        Returns:
            The state the request terminated in: AWAITING_REQUEST when the
            method was rejected, DECODING when decoding failed and was
            answered with an error, HANDLER_INVOKED on success.

        Raises:
            DecodeError: For invalid events unless ``reject_invalid_events``.
            Exception: Anything the handler raises.
        """
        method = request.method
        with self._tracer.start_as_current_span(
            SPAN_NAME,
            kind=SpanKind.SERVER,
            attributes={SpanAttributes.HTTP_METHOD: method},
        ) as span:
            try:
                self.check_method(method)
            except UnsupportedMethod as exc:
                logger.warning("Rejecting %s request: %s", method, exc)
                self._reject(span, response, HTTP_NOT_IMPLEMENTED, METHOD_NOT_IMPLEMENTED_MESSAGE)
                return DispatchState.AWAITING_REQUEST

            try:
                event = self.read_event(request)
            except (BodyReadError, MalformedContentLength, EmptyBody) as exc:
                logger.warning("Could not read CloudEvent body: %s", exc)
                self._reject(span, response, HTTP_BAD_REQUEST, EMPTY_BODY_MESSAGE)
                return DispatchState.DECODING
            except UnsupportedMode as exc:
                logger.warning("Rejecting CloudEvent request: %s", exc)
                self._reject(span, response, HTTP_UNSUPPORTED_MEDIA_TYPE, STRUCTURED_MODE_MESSAGE)
                return DispatchState.DECODING
            except DecodeError as exc:
                if not self.config.reject_invalid_events:
                    raise
                logger.warning("Rejecting invalid CloudEvent: %s", exc)
                self._reject(span, response, HTTP_BAD_REQUEST, str(exc))
                return DispatchState.DECODING

            self._annotate(span, event)
            logger.debug("Dispatching CloudEvent id=%s type=%s", event.id, event.type)
            self.handler(event, request, response)
            return DispatchState.HANDLER_INVOKED

    def _annotate(self, span: Span, event: CloudEvent) -> None:
        span.set_attribute(SpanAttributes.EVENT_ID, event.id)
        span.set_attribute(SpanAttributes.EVENT_SOURCE, event.source)
        span.set_attribute(SpanAttributes.EVENT_SPEC_VERSION, event.specversion)
        span.set_attribute(SpanAttributes.EVENT_TYPE, event.type)
        if event.subject is not None:
            span.set_attribute(SpanAttributes.EVENT_SUBJECT, event.subject)

        remote = extract_context(event)
        if remote is not None:
            span.add_link(remote)

    def _reject(self, span: Span, response: HttpResponse, status: int, message: str) -> None:
        span.set_attribute(SpanAttributes.HTTP_STATUS_CODE, status)
        span.set_status(StatusCode.ERROR, message)
        response.send_error(status, message)


__all__ = [
    "Dispatcher",
    "DispatchState",
    "EventHandler",
    "HttpRequest",
    "HttpResponse",
    "EMPTY_BODY_MESSAGE",
    "STRUCTURED_MODE_MESSAGE",
    "METHOD_NOT_IMPLEMENTED_MESSAGE",
]
