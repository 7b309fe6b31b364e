"""
Request body read policy.

Two strategies, picked by whether the request declared a Content-Length:

- Length-delimited: a single ``read(n)``. A short read is accepted as
  the whole body; the stream is not polled again to fill the declared
  length.
- Unbounded: read chunks until EOF. No size cap is applied here; hosts
  that need one must enforce it before the stream reaches us.
"""

from __future__ import annotations

from typing import BinaryIO, Optional

from celistener.errors import BodyReadError, MalformedContentLength

CHUNK_SIZE = 64 * 1024


def parse_content_length(value: str) -> int:
    text = value.strip()
    # Plain ASCII digits only: no sign, no "_" separators.
    if not (text.isascii() and text.isdigit()):
        raise MalformedContentLength(value)
    return int(text)


def read_body(stream: BinaryIO, content_length: Optional[str] = None) -> bytes:
    """
    Read a request body according to the read policy.

    Args:
        stream: Readable binary stream owned by the caller. It is not
            closed and no reference to it is kept.
        content_length: Raw Content-Length header value, or None when
            the request did not declare one.

    Returns:
        The bytes read, possibly empty.

    Raises:
        MalformedContentLength: If content_length is not a non-negative integer.
        BodyReadError: If the stream raises an I/O error.
    """
    if content_length is not None:
        length = parse_content_length(content_length)
        if length == 0:
            return b""
        try:
            chunk = stream.read(length)
        except OSError as exc:
            raise BodyReadError(f"Failed to read request body: {exc}") from exc
        return bytes(chunk or b"")

    buffer = bytearray()
    try:
        while True:
            chunk = stream.read(CHUNK_SIZE)
            if not chunk:
                break
            buffer.extend(chunk)
    except OSError as exc:
        raise BodyReadError(f"Failed to read request body: {exc}") from exc
    return bytes(buffer)


__all__ = [
    "CHUNK_SIZE",
    "parse_content_length",
    "read_body",
]
