"""
Listener configuration.

Explicit constructor arguments win; unset fields fall back to
``CELISTENER_*`` environment variables, then to built-in defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_ALLOWED_METHODS = ("POST",)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in _TRUE_VALUES


@dataclass
class ListenerConfig:
    """Single config object for a Dispatcher / CloudEventListener."""

    allowed_methods: tuple[str, ...] = ()
    require_body: bool = False
    reject_invalid_events: bool = False
    tracer_name: str = "celistener"

    def __post_init__(self) -> None:
        if not self.allowed_methods:
            raw = os.getenv("CELISTENER_ALLOWED_METHODS", "").strip()
            self.allowed_methods = (
                tuple(m for m in raw.split(",") if m.strip()) or DEFAULT_ALLOWED_METHODS
            )
        if not self.require_body:
            self.require_body = _env_flag("CELISTENER_REQUIRE_BODY")
        if not self.reject_invalid_events:
            self.reject_invalid_events = _env_flag("CELISTENER_REJECT_INVALID")

        self.allowed_methods = tuple(m.strip().upper() for m in self.allowed_methods)
        if not all(self.allowed_methods):
            raise ValueError("allowed_methods must not contain empty method names")


__all__ = [
    "DEFAULT_ALLOWED_METHODS",
    "ListenerConfig",
]
