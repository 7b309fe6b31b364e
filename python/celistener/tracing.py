"""
CloudEvents Distributed Tracing extension over OpenTelemetry.

The extension carries W3C Trace Context in two attributes, ``traceparent``
and ``tracestate``. These helpers move that context between events and
the OpenTelemetry API using the standard W3C propagator.
"""

from __future__ import annotations

from typing import Optional

from opentelemetry import context, trace
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from celistener.attributes import CloudEventAttributes as CE
from celistener.event import CloudEvent

_propagator = TraceContextTextMapPropagator()


def extract_context(event: CloudEvent) -> Optional[trace.SpanContext]:
    """
    Return the remote span context carried by an event, if any.

    Returns None when the event has no ``traceparent`` or it is invalid.
    """
    if CE.TRACEPARENT not in event.extensions:
        return None
    carrier = {
        key: event.extensions[key]
        for key in (CE.TRACEPARENT, CE.TRACESTATE)
        if key in event.extensions
    }
    ctx = _propagator.extract(carrier, context=context.Context())
    span_context = trace.get_current_span(ctx).get_span_context()
    if not span_context.is_valid:
        return None
    return span_context


def inject_context(event: CloudEvent, span: Optional[trace.Span] = None) -> CloudEvent:
    """
    Return a copy of ``event`` carrying the given (or current) span's context.

    The event is returned unchanged when there is no valid span.
    """
    if span is None:
        span = trace.get_current_span()
    if not span.get_span_context().is_valid:
        return event

    carrier: dict[str, str] = {}
    _propagator.inject(carrier, context=trace.set_span_in_context(span))

    extensions = dict(event.extensions)
    extensions.pop(CE.TRACESTATE, None)
    extensions.update(carrier)
    return event.replace(extensions=extensions)


__all__ = [
    "extract_context",
    "inject_context",
]
