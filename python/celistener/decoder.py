"""
CloudEvents HTTP Binary Mode Decoder
====================================

Rebuilds a ``CloudEvent`` from an HTTP header set and a request body.

Binary content mode maps each ``ce-<name>`` header to a context
attribute: the standard names become standard attributes and every other
suffix becomes an extension. ``Content-Type`` carries
``datacontenttype`` and the body is the raw ``data``.

Structured content mode (``application/cloudevents+json``) is not
implemented and always fails with ``UnsupportedMode``.

Usage:
    from celistener.decoder import decode

    event = decode({"ce-id": "1", "ce-source": "/s", ...}, request_stream)
"""

from __future__ import annotations

import logging
from typing import Any, BinaryIO, Mapping, Optional

from celistener.attributes import CloudEventAttributes as CE
from celistener.body import read_body
from celistener.errors import UnsupportedMode
from celistener.event import CloudEvent, parse_time

logger = logging.getLogger(__name__)


def _lower_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {name.lower(): value for name, value in headers.items()}


def is_structured(content_type: Optional[str]) -> bool:
    """Return True if a Content-Type denotes structured or batch mode."""
    if not content_type:
        return False
    lowered = content_type.lower()
    return CE.STRUCTURED_MEDIA_TYPE in lowered or CE.BATCH_MEDIA_TYPE in lowered


def decode(headers: Mapping[str, str], body: BinaryIO) -> CloudEvent:
    """
    Decode a binary-mode CloudEvents HTTP request.

    Args:
        headers: Request headers. Names are matched case-insensitively;
            the mapping is only read, never modified.
        body: Readable binary stream for the request body. It is read
            once and left open for the caller.

    Returns:
        The decoded CloudEvent. ``data`` is None when the body is empty.

    Raises:
        UnsupportedMode: Content-Type requests structured or batch mode.
        MalformedTimestamp: ``ce-time`` is not RFC 3339.
        MalformedContentLength: Content-Length is not a non-negative integer.
        BodyReadError: The body stream failed.
        MissingRequiredAttribute: id, source, specversion or type is absent.
        UnsupportedSpecVersion: ``ce-specversion`` is not "1.0".
    """
    lowered = _lower_headers(headers)

    content_type = lowered.get(CE.CONTENT_TYPE)
    if is_structured(content_type):
        raise UnsupportedMode(content_type)

    attributes: dict[str, Any] = {}
    extensions: dict[str, str] = {}
    for name, value in lowered.items():
        if not name.startswith(CE.HEADER_PREFIX):
            continue
        attr = name[len(CE.HEADER_PREFIX):]
        if attr == CE.TIME:
            attributes[attr] = parse_time(value)
        elif attr in CE.HEADER_MAPPED:
            attributes[attr] = value
        elif attr in CE.RESERVED or not attr:
            logger.debug("Ignoring header %r: not a binary-mode attribute", name)
        else:
            extensions[attr] = value

    if content_type is not None:
        attributes[CE.DATACONTENTTYPE] = content_type

    data = read_body(body, lowered.get(CE.CONTENT_LENGTH))

    # Required attributes are checked by CloudEvent itself.
    return CloudEvent(
        id=attributes.pop(CE.ID, ""),
        source=attributes.pop(CE.SOURCE, ""),
        type=attributes.pop(CE.TYPE, ""),
        specversion=attributes.pop(CE.SPECVERSION, ""),
        data=data or None,
        extensions=extensions,
        **attributes,
    )


__all__ = [
    "decode",
    "is_structured",
]
