"""
CloudEvents HTTP Binary Mode Encoder
====================================

Writes a ``CloudEvent`` into an HTTP response using binary content mode,
the inverse of ``celistener.decoder.decode``:

- one ``ce-<name>`` header per context attribute and extension
- ``Content-Type`` for ``datacontenttype``
- ``Content-Length`` + 200 + raw body when the event has data
- 204 and no body when it does not

The response only has to implement ``ResponseWriter``, so the encoder
works with any host (WSGI adapter, test fakes, ...).
"""

from __future__ import annotations

from typing import BinaryIO, Protocol, runtime_checkable

from celistener.attributes import CloudEventAttributes as CE
from celistener.errors import EncodeError
from celistener.event import CloudEvent

HTTP_OK = 200
HTTP_NO_CONTENT = 204


@runtime_checkable
class ResponseWriter(Protocol):
    """
    Minimal response-side interface the encoder writes through.

    ``open_body`` must return a writable binary stream usable as a
    context manager; closing it hands the bytes to the response.
    """

    def add_header(self, name: str, value: str) -> None:
        ...

    def set_status(self, status: int) -> None:
        ...

    def open_body(self) -> BinaryIO:
        ...


def to_headers(event: CloudEvent, *, prefix: str = CE.HEADER_PREFIX) -> dict[str, str]:
    """
    Build binary-mode headers for an event.

    Args:
        event: The CloudEvent to map.
        prefix: Attribute header prefix, "ce-" for HTTP.

    Returns:
        Ordered dict of header name -> value. ``datacontenttype`` is
        emitted as ``content-type``; ``data`` is not included.
    """
    headers: dict[str, str] = {}
    for name, value in event.get_attributes().items():
        if name == CE.DATACONTENTTYPE:
            headers[CE.CONTENT_TYPE] = value
        else:
            headers[f"{prefix}{name}"] = value
    return headers


def encode(event: CloudEvent, response: ResponseWriter) -> None:
    """
    Write an event to an HTTP response in binary content mode.

    Raises:
        EncodeError: If writing headers, status or body fails. The
            underlying OSError, or the ValueError of a closed body
            stream, is chained as ``__cause__``.
    """
    try:
        for name, value in to_headers(event).items():
            response.add_header(name, value)

        if event.data is None:
            response.set_status(HTTP_NO_CONTENT)
            return

        response.add_header(CE.CONTENT_LENGTH, str(len(event.data)))
        response.set_status(HTTP_OK)
        with response.open_body() as out:
            out.write(event.data)
            out.flush()
    except (OSError, ValueError) as exc:
        if isinstance(exc, EncodeError):
            raise
        raise EncodeError(f"Failed to write CloudEvent {event.id!r}: {exc}") from exc


__all__ = [
    "HTTP_OK",
    "HTTP_NO_CONTENT",
    "ResponseWriter",
    "encode",
    "to_headers",
]
