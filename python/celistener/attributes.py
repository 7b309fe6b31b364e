"""
CloudEvents HTTP Binding Constants
==================================

Header names, attribute names and media types used by the binary content
mode binding, plus the OpenTelemetry semantic-convention attribute keys
set on dispatch spans.

Attribute names follow the CloudEvents 1.0 core specification:
- Lowercase a-z and 0-9 only
- Carried over HTTP as ``ce-<name>`` headers in binary content mode
"""


class CloudEventAttributes:
    """Constants for the CloudEvents binary-mode HTTP binding."""

    # -------------------------------------------------------
    # Binding conventions
    # -------------------------------------------------------
    HEADER_PREFIX = "ce-"
    SPECVERSION_1_0 = "1.0"
    SUPPORTED_SPECVERSIONS = frozenset({SPECVERSION_1_0})

    # -------------------------------------------------------
    # Context attributes
    # -------------------------------------------------------
    ID = "id"
    SOURCE = "source"
    SPECVERSION = "specversion"
    TYPE = "type"
    DATACONTENTTYPE = "datacontenttype"
    DATASCHEMA = "dataschema"
    SUBJECT = "subject"
    TIME = "time"
    DATA = "data"

    # Order matters: MissingRequiredAttribute names the first one missing.
    REQUIRED = (ID, SOURCE, SPECVERSION, TYPE)

    # Attributes carried as ce-<name> headers in binary mode.
    # datacontenttype travels as Content-Type instead.
    HEADER_MAPPED = (ID, SOURCE, SPECVERSION, TYPE, TIME, SUBJECT, DATASCHEMA)

    # Names an extension attribute may never take.
    RESERVED = frozenset(HEADER_MAPPED) | {DATACONTENTTYPE, DATA}

    # -------------------------------------------------------
    # Distributed Tracing extension
    # -------------------------------------------------------
    TRACEPARENT = "traceparent"
    TRACESTATE = "tracestate"

    # -------------------------------------------------------
    # Plain HTTP headers (lowercase for case-insensitive lookup)
    # -------------------------------------------------------
    CONTENT_TYPE = "content-type"
    CONTENT_LENGTH = "content-length"

    # -------------------------------------------------------
    # Media types
    # -------------------------------------------------------
    STRUCTURED_MEDIA_TYPE = "application/cloudevents+json"
    BATCH_MEDIA_TYPE = "application/cloudevents-batch+json"


class SpanAttributes:
    """OpenTelemetry attribute keys recorded on dispatch spans."""

    # -------------------------------------------------------
    # CloudEvents semantic conventions
    # -------------------------------------------------------
    EVENT_ID = "cloudevents.event_id"
    EVENT_SOURCE = "cloudevents.event_source"
    EVENT_SPEC_VERSION = "cloudevents.event_spec_version"
    EVENT_TYPE = "cloudevents.event_type"
    EVENT_SUBJECT = "cloudevents.event_subject"

    # -------------------------------------------------------
    # HTTP semantic conventions
    # -------------------------------------------------------
    HTTP_METHOD = "http.request.method"
    HTTP_STATUS_CODE = "http.response.status_code"
