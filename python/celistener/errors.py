"""
Exception taxonomy for the CloudEvents HTTP binding.

Decoding failures derive from ``DecodeError`` (also a ``ValueError``),
encoding failures from ``EncodeError`` (also an ``OSError``) and dispatch
failures from ``ProtocolError``. Everything derives from
``CloudEventError`` so hosts can catch the whole family at once.
"""

from __future__ import annotations


class CloudEventError(Exception):
    """Base class for every error raised by celistener."""


# ── Decoding ──────────────────────────────────────────────────────────


class DecodeError(CloudEventError, ValueError):
    """Raised when an HTTP request cannot be turned into a CloudEvent."""


class UnsupportedMode(DecodeError):
    """Raised for structured (or batch) content mode requests."""

    def __init__(self, content_type: str):
        super().__init__(
            f"Content mode for {content_type!r} is not supported; "
            "only binary content mode is implemented"
        )
        self.content_type = content_type


class MalformedTimestamp(DecodeError):
    """Raised when the ``time`` attribute is not an RFC 3339 timestamp."""

    def __init__(self, value: str):
        super().__init__(f"Attribute 'time' is not an RFC 3339 timestamp: {value!r}")
        self.value = value


class MissingRequiredAttribute(DecodeError):
    """Raised when one of id, source, specversion or type is missing or empty."""

    def __init__(self, attribute: str):
        super().__init__(f"Missing required CloudEvents attribute: {attribute}")
        self.attribute = attribute


class UnsupportedSpecVersion(DecodeError):
    """Raised when ``specversion`` is not a version this binding understands."""

    def __init__(self, specversion: str):
        super().__init__(f"Unsupported CloudEvents specversion: {specversion!r}")
        self.specversion = specversion


class MalformedContentLength(DecodeError):
    """Raised when Content-Length is not a non-negative integer."""

    def __init__(self, value: str):
        super().__init__(f"Content-Length is not a non-negative integer: {value!r}")
        self.value = value


class BodyReadError(DecodeError):
    """Raised when the request body stream fails while being read."""


class EmptyBody(DecodeError):
    """Raised by the dispatcher when a body is required but none was sent."""


# ── Encoding ──────────────────────────────────────────────────────────


class EncodeError(CloudEventError, OSError):
    """Raised when a CloudEvent cannot be written to an HTTP response."""


# ── Dispatch ──────────────────────────────────────────────────────────


class ProtocolError(CloudEventError):
    """Raised for HTTP-level protocol violations."""


class UnsupportedMethod(ProtocolError):
    """Raised when the request method is not in the dispatcher's allow-list."""

    def __init__(self, method: str):
        super().__init__(f"Method not implemented: {method}")
        self.method = method


__all__ = [
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
