"""Tests for signed OAuth state tokens."""

from __future__ import annotations

import base64
import json

import pytest

from hookgate.security.oauth.state import (
    STATE_TTL_SECONDS,
    AuthorizationContext,
    DecodeStatus,
    StateTokenCodec,
)

SECRET = b"state-test-secret"
NOW = 1_700_000_000


def b64(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


@pytest.fixture
def codec() -> StateTokenCodec:
    return StateTokenCodec(secret=SECRET)


@pytest.fixture
def context() -> AuthorizationContext:
    return AuthorizationContext(
        organization_id="7b1f3c1e-org",
        user_id="a9d2-user",
        issued_at=NOW,
    )


class TestRoundTrip:
    """decode(encode(ctx)) == ctx."""

    def test_round_trip(self, codec, context):
        """Test a fresh token decodes to the same context."""
        result = codec.decode(codec.encode(context), now=NOW + 1)
        assert result.status is DecodeStatus.VALID
        assert result.context == context
        assert result.valid
        assert bool(result) is True

    @pytest.mark.parametrize(
        "organization_id,user_id",
        [
            ("o", "u"),
            ("org with spaces", "user/with/slashes"),
            ("组织", "usér"),
            ("a" * 256, "b" * 256),
        ],
    )
    def test_round_trip_varied_ids(self, codec, organization_id, user_id):
        """Test ids with unusual characters survive the round trip."""
        context = AuthorizationContext(organization_id, user_id, NOW)
        assert codec.decode(codec.encode(context), now=NOW).context == context

    def test_token_is_url_safe(self, codec, context):
        """Test the token contains only URL-safe characters."""
        token = codec.encode(context)
        allowed = set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.")
        assert set(token) <= allowed
        assert "=" not in token

    def test_token_is_opaque(self, codec, context):
        """Test ids are not visible in the token text."""
        token = codec.encode(context)
        assert context.organization_id not in token
        assert context.user_id not in token

    def test_issue(self, codec):
        """Test issue stamps the current time and returns a decodable token."""
        context, token = codec.issue("org-1", "user-1", now=NOW)
        assert context == AuthorizationContext("org-1", "user-1", NOW)
        assert codec.decode(token, now=NOW).context == context


class TestExpiry:
    """Tokens expire after the flow lifetime."""

    def test_default_lifetime_is_ten_minutes(self):
        """Test the default lifetime."""
        assert STATE_TTL_SECONDS == 600
        assert StateTokenCodec(secret=SECRET).lifetime == 600

    def test_valid_at_lifetime_boundary(self, codec, context):
        """Test a token exactly at the lifetime is still valid."""
        result = codec.decode(codec.encode(context), now=NOW + STATE_TTL_SECONDS)
        assert result.status is DecodeStatus.VALID

    def test_expired(self, codec, context):
        """Test a token past its lifetime is EXPIRED_TOKEN with no context."""
        result = codec.decode(codec.encode(context), now=NOW + STATE_TTL_SECONDS + 1)
        assert result.status is DecodeStatus.EXPIRED_TOKEN
        assert result.context is None
        assert not result

    def test_issued_in_future(self, codec, context):
        """Test a token issued well in the future is rejected."""
        result = codec.decode(codec.encode(context), now=NOW - 3600)
        assert result.status is DecodeStatus.MALFORMED_TOKEN

    def test_small_clock_skew_tolerated(self, codec, context):
        """Test a token a few seconds ahead of the local clock is accepted."""
        result = codec.decode(codec.encode(context), now=NOW - 5)
        assert result.status is DecodeStatus.VALID


class TestIntegrity:
    """Tokens cannot be forged or altered."""

    def test_forged_payload_rejected(self, codec, context):
        """Test swapping the organization id invalidates the token."""
        token = codec.encode(context)
        _, signature = token.split(".")
        forged_payload = b64(
            json.dumps(
                {"issuedAt": NOW, "organizationId": "victim-org", "userId": context.user_id},
                separators=(",", ":"),
                sort_keys=True,
            ).encode()
        )
        result = codec.decode(f"{forged_payload}.{signature}", now=NOW)
        assert result.status is DecodeStatus.MALFORMED_TOKEN
        assert result.context is None

    def test_unsigned_base64_state_rejected(self, codec, context):
        """Test a plain base64 JSON state without a signature is rejected."""
        legacy = base64.b64encode(
            json.dumps(
                {"organizationId": context.organization_id, "userId": context.user_id, "timestamp": NOW * 1000}
            ).encode()
        ).decode()
        assert codec.decode(legacy, now=NOW).status is DecodeStatus.MALFORMED_TOKEN

    def test_other_secret_rejected(self, context):
        """Test a token signed with a different secret is rejected."""
        token = StateTokenCodec(secret=b"other-secret").encode(context)
        result = StateTokenCodec(secret=SECRET).decode(token, now=NOW)
        assert result.status is DecodeStatus.MALFORMED_TOKEN

    def test_every_single_character_corruption_rejected(self, codec, context):
        """Test corrupting any one character never yields a valid context."""
        token = codec.encode(context)
        for i in range(len(token)):
            replacement = "A" if token[i] != "A" else "B"
            corrupted = token[:i] + replacement + token[i + 1 :]
            result = codec.decode(corrupted, now=NOW)
            assert result.status is DecodeStatus.MALFORMED_TOKEN, i
            assert result.context is None

    def test_signed_payload_with_wrong_shape(self, codec):
        """Test a correctly signed payload missing fields is still malformed."""
        segment = b64(b'{"organizationId":"org-1"}')
        token = f"{segment}.{codec._sign(segment)}"
        assert codec.decode(token, now=NOW).status is DecodeStatus.MALFORMED_TOKEN

    @pytest.mark.parametrize(
        "document",
        [
            b"[]",
            b"not json",
            b'{"organizationId":"o","userId":"u","issuedAt":"1700000000"}',
            b'{"organizationId":"o","userId":"u","issuedAt":true}',
            b'{"organizationId":"","userId":"u","issuedAt":1700000000}',
            b'{"organizationId":"o","userId":7,"issuedAt":1700000000}',
        ],
    )
    def test_signed_garbage_is_malformed(self, codec, document):
        """Test signed payloads that are not a valid context are malformed."""
        segment = b64(document)
        token = f"{segment}.{codec._sign(segment)}"
        result = codec.decode(token, now=NOW)
        assert result.status is DecodeStatus.MALFORMED_TOKEN
        assert result.context is None


class TestTotality:
    """decode never raises."""

    @pytest.mark.parametrize(
        "token",
        [
            "",
            ".",
            "..",
            "a.b.c",
            "no-separator",
            "abc.",
            ".abc",
            "%%%.###",
            "ünïcode.tøken",
            "abc.\udcff",
            "\udcff.abc",
            "abc.sig\ud800",
            "a" * 10_000,
        ],
    )
    def test_garbage_tokens(self, codec, token):
        """Test arbitrary strings decode to MALFORMED_TOKEN."""
        result = codec.decode(token, now=NOW)
        assert result.status is DecodeStatus.MALFORMED_TOKEN
        assert result.context is None
        assert result.error

    def test_non_string_token(self, codec):
        """Test a non-string token is malformed rather than an error."""
        assert codec.decode(None, now=NOW).status is DecodeStatus.MALFORMED_TOKEN  # type: ignore[arg-type]

    def test_empty_secret_rejected(self):
        """Test an empty secret is a configuration error."""
        with pytest.raises(ValueError, match="non-empty secret"):
            StateTokenCodec(secret="")
