"""Tests for event envelope parsing and the handler registry."""

from __future__ import annotations

import json
from urllib.parse import urlencode

import pytest

from hookgate.webhooks.events import (
    UNRECOGNIZED_KIND,
    DispatchResponse,
    EventRegistry,
    InteractionEvent,
    parse_event_callback,
    parse_interaction,
    url_verification,
)


class TestParseInteraction:
    """Tests for parse_interaction."""

    def test_type_discriminator(self):
        """Test a JSON body with a type field."""
        event = parse_interaction(b'{"type": "block_actions", "user": {"id": "U1"}}')
        assert event.kind == "block_actions"
        assert event.payload["user"] == {"id": "U1"}
        assert event.recognized

    def test_kind_discriminator_preferred(self):
        """Test kind takes precedence over type."""
        event = parse_interaction(b'{"kind": "button.clicked", "type": "block_actions"}')
        assert event.kind == "button.clicked"

    def test_form_encoded_payload(self):
        """Test the form body shape used for interactive components."""
        document = {"type": "view_submission", "view": {"id": "V1"}}
        body = urlencode({"payload": json.dumps(document)}).encode()
        event = parse_interaction(body)
        assert event.kind == "view_submission"
        assert event.payload["view"] == {"id": "V1"}

    @pytest.mark.parametrize(
        "body",
        [
            b"",
            b"not json",
            b"{",
            b"[1, 2, 3]",
            b'"block_actions"',
            b"\xff\xfe\x00",
            b"payload=",
            b"payload=%7Bbroken",
            b'{"type": 42}',
            b'{"type": ""}',
        ],
    )
    def test_malformed_bodies_are_unrecognized(self, body):
        """Test malformed bodies become unrecognized events instead of raising."""
        event = parse_interaction(body)
        assert event.kind == UNRECOGNIZED_KIND
        assert not event.recognized

    def test_object_without_discriminator_keeps_payload(self):
        """Test an object without kind/type is unrecognized but keeps its payload."""
        event = parse_interaction(b'{"team": "T1"}')
        assert event.kind == UNRECOGNIZED_KIND
        assert event.payload == {"team": "T1"}


class TestParseEventCallback:
    """Tests for Events API envelope parsing."""

    def test_event_callback_keyed_by_inner_type(self):
        """Test event_callback routes by the inner event type."""
        body = json.dumps(
            {
                "type": "event_callback",
                "team_id": "T123",
                "event": {"type": "app_uninstalled"},
            }
        ).encode()
        event = parse_event_callback(body)
        assert event.kind == "app_uninstalled"
        assert event.payload["team_id"] == "T123"

    def test_url_verification_passthrough(self):
        """Test non-callback envelopes keep their outer type."""
        event = parse_event_callback(b'{"type": "url_verification", "challenge": "abc"}')
        assert event.kind == "url_verification"

    @pytest.mark.parametrize(
        "document",
        [
            {"type": "event_callback"},
            {"type": "event_callback", "event": "channel_deleted"},
            {"type": "event_callback", "event": {"channel": "C1"}},
        ],
    )
    def test_callback_without_inner_type(self, document):
        """Test an event_callback without an inner type is unrecognized."""
        event = parse_event_callback(json.dumps(document).encode())
        assert event.kind == UNRECOGNIZED_KIND


class TestEventRegistry:
    """Tests for EventRegistry."""

    def test_register_and_resolve(self):
        """Test registered handlers resolve by kind."""

        async def handler(event):
            return None

        registry = EventRegistry()
        registry.register("block_actions", handler)
        assert registry.resolve("block_actions") is handler
        assert registry.resolve("view_submission") is None
        assert "block_actions" in registry
        assert len(registry) == 1

    def test_decorator(self):
        """Test the on() decorator registers and returns the handler."""
        registry = EventRegistry()

        @registry.on("view_submission")
        async def handler(event):
            return None

        assert registry.resolve("view_submission") is handler
        assert registry.kinds() == ["view_submission"]

    def test_constructor_handlers(self):
        """Test handlers passed at construction."""

        async def handler(event):
            return None

        registry = EventRegistry({"a": handler, "b": handler})
        assert sorted(registry) == ["a", "b"]

    def test_duplicate_registration_rejected(self):
        """Test a kind cannot be registered twice."""

        async def handler(event):
            return None

        registry = EventRegistry({"block_actions": handler})
        with pytest.raises(ValueError, match="already registered"):
            registry.register("block_actions", handler)

    def test_reserved_kinds_rejected(self):
        """Test empty and reserved kinds cannot be registered."""

        async def handler(event):
            return None

        registry = EventRegistry()
        with pytest.raises(ValueError, match="non-empty"):
            registry.register("", handler)
        with pytest.raises(ValueError, match="unrecognized"):
            registry.register(UNRECOGNIZED_KIND, handler)

    def test_copy_is_independent(self):
        """Test registering on a copy leaves the original unchanged."""

        async def handler(event):
            return None

        registry = EventRegistry({"block_actions": handler})
        copied = registry.copy()
        copied.register("view_submission", handler)

        assert copied.resolve("block_actions") is handler
        assert registry.kinds() == ["block_actions"]


class TestUrlVerification:
    """Tests for the built-in url_verification handler."""

    @pytest.mark.asyncio
    async def test_echoes_challenge(self):
        """Test the challenge is echoed back."""
        event = InteractionEvent(kind="url_verification", payload={"challenge": "3eZbrw1aBm2"})
        response = await url_verification(event)
        assert response == DispatchResponse(status=200, body={"challenge": "3eZbrw1aBm2"})

    @pytest.mark.asyncio
    async def test_missing_challenge_acknowledged(self):
        """Test a verification event without a challenge is only acknowledged."""
        response = await url_verification(InteractionEvent(kind="url_verification"))
        assert response == DispatchResponse.ok()
