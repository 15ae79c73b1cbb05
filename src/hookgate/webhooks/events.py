"""Interaction event envelopes and the handler registry.

Event kinds are open-ended strings chosen by the external platform. New kinds
are supported by registering a handler; the verification layer never changes.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs

# Kind given to payloads that cannot be parsed into an envelope.
UNRECOGNIZED_KIND = "__unrecognized__"

# Verified but malformed payloads are acknowledged, not rejected
MALFORMED_PAYLOAD_POLICY = "acknowledge"

DISCRIMINATOR_FIELDS = ("kind", "type")


@dataclass(frozen=True)
class InteractionEvent:
    """A parsed event envelope."""

    kind: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def recognized(self) -> bool:
        return self.kind != UNRECOGNIZED_KIND


@dataclass(frozen=True)
class DispatchResponse:
    """Transport-neutral response produced by the dispatcher."""

    status: int
    body: dict[str, Any]

    @classmethod
    def ok(cls) -> DispatchResponse:
        return cls(status=200, body={"ok": True})

    @classmethod
    def error(cls, status: int, message: str) -> DispatchResponse:
        return cls(status=status, body={"error": message})


HandlerResult = DispatchResponse | dict[str, Any] | None
Handler = Callable[[InteractionEvent], Awaitable[HandlerResult]]


def _unrecognized(payload: Any = None) -> InteractionEvent:
    return InteractionEvent(
        kind=UNRECOGNIZED_KIND,
        payload=payload if isinstance(payload, dict) else {},
    )


def _decode_document(body: bytes) -> Any:
    """Decode a JSON body, or a form body carrying JSON in ``payload``.

    Raises:
        ValueError: If the body is neither.
    """
    text = body.decode("utf-8")
    stripped = text.lstrip()
    if stripped.startswith("payload="):
        form = parse_qs(stripped, keep_blank_values=True)
        values = form.get("payload")
        if not values:
            raise ValueError("Form body without payload field")
        return json.loads(values[0])
    return json.loads(text)


def _discriminator(document: dict[str, Any]) -> str | None:
    for name in DISCRIMINATOR_FIELDS:
        value = document.get(name)
        if isinstance(value, str) and value:
            return value
    return None


def parse_interaction(body: bytes) -> InteractionEvent:
    """Parse an interaction body into an envelope.

    Never raises: bodies that are not valid UTF-8 JSON objects with a string
    ``kind`` or ``type`` field become an unrecognized event.
    """
    try:
        document = _decode_document(body)
    except (UnicodeDecodeError, ValueError):
        return _unrecognized()

    if not isinstance(document, dict):
        return _unrecognized()

    kind = _discriminator(document)
    if kind is None:
        return _unrecognized(document)
    return InteractionEvent(kind=kind, payload=document)


def parse_event_callback(body: bytes) -> InteractionEvent:
    """Parse an Events API body.

    ``event_callback`` envelopes are keyed by the inner event type, so a
    handler can be registered for ``app_uninstalled`` directly. The payload
    keeps the whole outer envelope (team id, event id, ...).
    """
    event = parse_interaction(body)
    if event.kind != "event_callback":
        return event

    inner = event.payload.get("event")
    if not isinstance(inner, dict):
        return _unrecognized(event.payload)
    inner_kind = inner.get("type")
    if not isinstance(inner_kind, str) or not inner_kind:
        return _unrecognized(event.payload)
    return InteractionEvent(kind=inner_kind, payload=event.payload)


class EventRegistry:
    """Maps event kinds to async handlers.

    Example:
        registry = EventRegistry()

        @registry.on("block_actions")
        async def handle_click(event: InteractionEvent) -> None:
            ...
    """

    def __init__(self, handlers: dict[str, Handler] | None = None) -> None:
        self._handlers: dict[str, Handler] = {}
        for kind, handler in (handlers or {}).items():
            self.register(kind, handler)

    def register(self, kind: str, handler: Handler) -> None:
        if not kind:
            raise ValueError("Event kind must be a non-empty string")
        if kind == UNRECOGNIZED_KIND:
            raise ValueError("Cannot register a handler for unrecognized events")
        if kind in self._handlers:
            raise ValueError(f"Handler already registered for kind: {kind}")
        self._handlers[kind] = handler

    def on(self, kind: str) -> Callable[[Handler], Handler]:
        """Decorator form of :meth:`register`."""

        def decorator(handler: Handler) -> Handler:
            self.register(kind, handler)
            return handler

        return decorator

    def copy(self) -> EventRegistry:
        """Return an independent registry with the same handlers."""
        return EventRegistry(self._handlers)

    def resolve(self, kind: str) -> Handler | None:
        return self._handlers.get(kind)

    def kinds(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, kind: object) -> bool:
        return kind in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)


async def url_verification(event: InteractionEvent) -> DispatchResponse:
    """Echo the Events API endpoint verification challenge."""
    challenge = event.payload.get("challenge")
    if not isinstance(challenge, str):
        return DispatchResponse.ok()
    return DispatchResponse(status=200, body={"challenge": challenge})
