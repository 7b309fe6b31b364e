"""
CloudEvent value type.

An immutable record of the CloudEvents 1.0 context attributes plus an
opaque binary payload. The four required attributes are checked on
construction, so an invalid event can never exist.

Usage:
    from celistener.event import CloudEvent

    ev = CloudEvent.create("/orders", "com.example.order.created", data=b'{"id": 7}')
    reply = ev.replace(type="com.example.order.accepted", data=None)
"""

from __future__ import annotations

import dataclasses
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping, Optional

from celistener.attributes import CloudEventAttributes as CE
from celistener.errors import (
    MalformedTimestamp,
    MissingRequiredAttribute,
    UnsupportedSpecVersion,
)

_RFC3339 = re.compile(
    r"(?P<datetime>[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2})"
    r"(?:\.(?P<fraction>[0-9]+))?"
    r"(?P<offset>Z|[+-][0-9]{2}:[0-9]{2})"
)


def parse_time(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp into a timezone-aware datetime.

    Only the RFC 3339 ``date-time`` form is accepted: full date, ``T``,
    full time, optional fraction and a mandatory ``Z`` or ``+hh:mm``
    offset. Fractions finer than microseconds are truncated.

    Raises:
        MalformedTimestamp: If the value is not RFC 3339.
    """
    match = _RFC3339.fullmatch(value.strip().upper())
    if match is None:
        raise MalformedTimestamp(value)

    text = match["datetime"]
    if match["fraction"]:
        text += "." + match["fraction"][:6].ljust(6, "0")
    offset = match["offset"]
    text += "+00:00" if offset == "Z" else offset
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise MalformedTimestamp(value) from exc


def format_time(value: datetime) -> str:
    """Render a datetime as RFC 3339, using ``Z`` for UTC."""
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


@dataclass(frozen=True)
class CloudEvent:
    """
    A CloudEvents 1.0 event.

    Attributes:
        id: Producer-assigned identifier, unique per source.
        source: URI-reference identifying the context of the occurrence.
        type: Type of occurrence (e.g. "com.example.object.deleted").
        specversion: CloudEvents version; only "1.0" is supported.
        datacontenttype: Media type of ``data``.
        dataschema: URI of the schema ``data`` adheres to.
        subject: Subject of the event within the context of ``source``.
        time: Timezone-aware timestamp of the occurrence.
        data: Raw payload; ``None`` when the event carries no data.
        extensions: Extension attributes, lowercase name -> string value.
    """

    id: str
    source: str
    type: str
    specversion: str = CE.SPECVERSION_1_0
    datacontenttype: Optional[str] = None
    dataschema: Optional[str] = None
    subject: Optional[str] = None
    time: Optional[datetime] = None
    data: Optional[bytes] = None
    extensions: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        for name in CE.REQUIRED:
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise MissingRequiredAttribute(name)

        if self.specversion not in CE.SUPPORTED_SPECVERSIONS:
            raise UnsupportedSpecVersion(self.specversion)

        if isinstance(self.time, str):
            object.__setattr__(self, "time", parse_time(self.time))
        elif self.time is not None and self.time.tzinfo is None:
            raise MalformedTimestamp(self.time.isoformat())

        if self.data is not None:
            if isinstance(self.data, str):
                raise TypeError("CloudEvent data must be bytes, not str")
            object.__setattr__(self, "data", bytes(self.data))

        extensions: dict[str, str] = {}
        for name, value in self.extensions.items():
            key = name.lower()
            if key in CE.RESERVED:
                raise ValueError(
                    f"Extension name {name!r} collides with a standard attribute"
                )
            extensions[key] = str(value)
        object.__setattr__(self, "extensions", MappingProxyType(extensions))

    @classmethod
    def create(
        cls,
        source: str,
        type: str,
        data: Optional[bytes] = None,
        **attributes: Any,
    ) -> CloudEvent:
        """
        Build a new event with a fresh UUID4 id and the current UTC time.

        Any other attribute (``subject``, ``datacontenttype``,
        ``extensions`` ...) can be passed as a keyword argument.
        """
        attributes.setdefault("id", str(uuid.uuid4()))
        attributes.setdefault("time", datetime.now(timezone.utc))
        return cls(source=source, type=type, data=data, **attributes)

    def replace(self, **changes: Any) -> CloudEvent:
        """Return a copy of this event with the given attributes changed."""
        if "extensions" not in changes:
            changes["extensions"] = dict(self.extensions)
        return dataclasses.replace(self, **changes)

    def get_attributes(self) -> dict[str, str]:
        """
        Return every present context attribute as a string.

        Standard attributes come first in CloudEvents order, followed by
        extensions. ``data`` is not an attribute and is never included.
        """
        attrs: dict[str, str] = {
            CE.SPECVERSION: self.specversion,
            CE.ID: self.id,
            CE.SOURCE: self.source,
            CE.TYPE: self.type,
        }
        if self.datacontenttype is not None:
            attrs[CE.DATACONTENTTYPE] = self.datacontenttype
        if self.dataschema is not None:
            attrs[CE.DATASCHEMA] = self.dataschema
        if self.subject is not None:
            attrs[CE.SUBJECT] = self.subject
        if self.time is not None:
            attrs[CE.TIME] = format_time(self.time)
        attrs.update(self.extensions)
        return attrs


__all__ = [
    "CloudEvent",
    "parse_time",
    "format_time",
]
