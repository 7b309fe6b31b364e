"""
WSGI host adapter.

``CloudEventListener`` is a WSGI application that feeds every request
through a ``Dispatcher``. Either pass a handler, or subclass and override
``consume_event``:

    from wsgiref.simple_server import make_server
    from celistener.wsgi import CloudEventListener

    class OrderListener(CloudEventListener):
        def consume_event(self, event, request, response):
            self.send_cloud_event(event.replace(type="com.example.ack"), response)

    make_server("", 8080, OrderListener()).serve_forever()

The response is buffered: status, headers and body are collected while
the handler runs and ``start_response`` is called once afterwards.
"""

from __future__ import annotations

import io
from collections.abc import Mapping
from http import HTTPStatus
from typing import Any, BinaryIO, Callable, Iterable, Iterator, Optional

from opentelemetry import trace

from celistener.config import ListenerConfig
from celistener.dispatcher import Dispatcher, DispatchState, EventHandler
from celistener.encoder import encode
from celistener.event import CloudEvent

StartResponse = Callable[..., Any]

_CGI_HEADERS = ("CONTENT_TYPE", "CONTENT_LENGTH")


class Headers(Mapping):
    """Read-only, case-insensitive header mapping."""

    def __init__(self, items: Iterable[tuple[str, str]] = ()):
        self._items = {name.lower(): value for name, value in items}

    def __getitem__(self, name: str) -> str:
        return self._items[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Headers({self._items!r})"


def headers_from_environ(environ: Mapping[str, Any]) -> Headers:
    """
    Rebuild HTTP headers from a WSGI environ.

    ``HTTP_CE_ID`` becomes ``ce-id``; blank CONTENT_TYPE / CONTENT_LENGTH
    values (as set by some servers when the header was absent) are dropped.
    """
    items = []
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            name = key[len("HTTP_"):]
        elif key in _CGI_HEADERS:
            if not str(value).strip():
                continue
            name = key
        else:
            continue
        items.append((name.replace("_", "-").lower(), value))
    return Headers(items)


class WsgiRequest:
    """Request handle built from a WSGI environ."""

    def __init__(self, environ: Mapping[str, Any]):
        self.environ = environ
        self.method: str = environ.get("REQUEST_METHOD", "GET")
        self.headers = headers_from_environ(environ)
        self.body: BinaryIO = environ.get("wsgi.input") or io.BytesIO()
        # Without a declared length, wsgi.input only signals EOF when the
        # server sets wsgi.input_terminated; otherwise treat the body as empty.
        if "content-length" not in self.headers and not environ.get("wsgi.input_terminated"):
            self.body = io.BytesIO()


class _BodySink(io.BytesIO):
    """Writable body stream that hands its bytes to the response on close."""

    def __init__(self, response: WsgiResponse):
        super().__init__()
        self._response = response

    def close(self) -> None:
        if not self.closed:
            self._response.body += self.getvalue()
        super().close()


class WsgiResponse:
    """Buffered response handle implementing the HttpResponse protocol."""

    def __init__(self) -> None:
        self.status = int(HTTPStatus.OK)
        self.headers: list[tuple[str, str]] = []
        self.body = b""

    def add_header(self, name: str, value: str) -> None:
        self.headers.append((name, value))

    def set_status(self, status: int) -> None:
        self.status = status

    def open_body(self) -> BinaryIO:
        return _BodySink(self)

    def send_error(self, status: int, message: str) -> None:
        body = message.encode("utf-8")
        self.status = status
        self.headers = [
            ("Content-Type", "text/plain; charset=utf-8"),
            ("Content-Length", str(len(body))),
        ]
        self.body = body

    @property
    def status_line(self) -> str:
        try:
            phrase = HTTPStatus(self.status).phrase
        except ValueError:
            phrase = "Unknown"
        return f"{self.status} {phrase}"


class CloudEventListener:
    """
    WSGI application consuming binary-mode CloudEvents.

    Args:
        handler: Optional event handler. When omitted, ``consume_event``
            is used and must be overridden by a subclass.
        config: Listener configuration passed to the Dispatcher.
        tracer_provider: Optional OTel TracerProvider for dispatch spans.
    """

    def __init__(
        self,
        handler: Optional[EventHandler] = None,
        config: Optional[ListenerConfig] = None,
        *,
        tracer_provider: Optional[trace.TracerProvider] = None,
    ):
        self.dispatcher = Dispatcher(
            handler or self.consume_event,
            config,
            tracer_provider=tracer_provider,
        )

    def consume_event(
        self,
        event: CloudEvent,
        request: WsgiRequest,
        response: WsgiResponse,
    ) -> None:
        raise NotImplementedError(
            f"{type(self).__name__} must override consume_event() or be given a handler"
        )

    def send_cloud_event(self, event: CloudEvent, response: WsgiResponse) -> None:
        """Write ``event`` to ``response`` in binary content mode."""
        encode(event, response)

    def handle(self, environ: Mapping[str, Any]) -> tuple[WsgiResponse, DispatchState]:
        """Dispatch one WSGI request and return the filled-in response."""
        request = WsgiRequest(environ)
        response = WsgiResponse()
        state = self.dispatcher.dispatch(request, response)
        return response, state

    def __call__(self, environ: Mapping[str, Any], start_response: StartResponse) -> list[bytes]:
        response, _ = self.handle(environ)
        start_response(response.status_line, response.headers)
        return [response.body]


__all__ = [
    "CloudEventListener",
    "Headers",
    "WsgiRequest",
    "WsgiResponse",
    "headers_from_environ",
]
