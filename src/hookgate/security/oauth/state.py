"""Signed OAuth state tokens.

The state parameter carries the organization and user that started an
install through the external platform's authorize redirect and back, so the
server keeps nothing for that leg of the flow.

Token format (URL-safe, unpadded base64):

    base64url(compact JSON context) + "." + base64url(HMAC-SHA256(secret, first segment))

The payload is readable by anyone holding the token. The signature stops a
reader from forging a different organization or user into it.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from enum import Enum

# Flow lifetime in seconds
STATE_TTL_SECONDS = 600
# Allowance for clock differences between instances
CLOCK_SKEW_SECONDS = 60

_SEPARATOR = "."


@dataclass(frozen=True)
class AuthorizationContext:
    """Who started the authorization flow, and when."""

    organization_id: str
    user_id: str
    issued_at: int


class DecodeStatus(Enum):
    """Outcome of decoding a state token."""

    VALID = "valid"
    MALFORMED_TOKEN = "malformed_token"
    EXPIRED_TOKEN = "expired_token"


@dataclass(frozen=True)
class DecodeResult:
    """Result of decoding a state token.

    ``context`` is set only when ``status`` is VALID.
    """

    status: DecodeStatus
    context: AuthorizationContext | None = None
    error: str | None = None

    @property
    def valid(self) -> bool:
        return self.status is DecodeStatus.VALID

    def __bool__(self) -> bool:
        return self.valid


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(f"{data}{padding}".encode("ascii"))


def _malformed(error: str) -> DecodeResult:
    return DecodeResult(status=DecodeStatus.MALFORMED_TOKEN, error=error)


class StateTokenCodec:
    """Encodes and decodes signed state tokens."""

    def __init__(
        self,
        secret: bytes | str,
        lifetime: int = STATE_TTL_SECONDS,
        clock_skew: int = CLOCK_SKEW_SECONDS,
    ) -> None:
        """Initialize the codec.

        Args:
            secret: Key for the token signature.
            lifetime: Seconds a token stays usable after it is issued.
            clock_skew: Seconds a token may be issued in the future.
        """
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        if not secret:
            raise ValueError("StateTokenCodec requires a non-empty secret")
        self._secret = secret
        self.lifetime = lifetime
        self.clock_skew = clock_skew

    def _sign(self, segment: str) -> str:
        digest = hmac.new(self._secret, segment.encode("ascii"), hashlib.sha256).digest()
        return _b64url_encode(digest)

    def encode(self, context: AuthorizationContext) -> str:
        """Serialize and sign an authorization context."""
        document = {
            "organizationId": context.organization_id,
            "userId": context.user_id,
            "issuedAt": context.issued_at,
        }
        raw = json.dumps(document, separators=(",", ":"), sort_keys=True).encode("utf-8")
        segment = _b64url_encode(raw)
        return f"{segment}{_SEPARATOR}{self._sign(segment)}"

    def issue(
        self,
        organization_id: str,
        user_id: str,
        now: float | None = None,
    ) -> tuple[AuthorizationContext, str]:
        """Create a context stamped with the current time and its token."""
        issued_at = int(time.time() if now is None else now)
        context = AuthorizationContext(
            organization_id=organization_id,
            user_id=user_id,
            issued_at=issued_at,
        )
        return context, self.encode(context)

    def decode(self, token: str, now: float | None = None) -> DecodeResult:
        """Verify and parse a state token.

        Never raises. Any token that is not exactly what :meth:`encode`
        produced with this secret decodes to MALFORMED_TOKEN; a genuine
        token past its lifetime decodes to EXPIRED_TOKEN.
        """
        if not isinstance(token, str) or not token:
            return _malformed("Empty state token")

        parts = token.split(_SEPARATOR)
        if len(parts) != 2 or not all(parts):
            return _malformed("State token must have two segments")
        segment, signature = parts

        try:
            expected = self._sign(segment)
            matches = hmac.compare_digest(expected.encode("ascii"), signature.encode("ascii"))
        except UnicodeEncodeError:
            return _malformed("State token is not ASCII")
        if not matches:
            return _malformed("State token signature mismatch")

        try:
            document = json.loads(_b64url_decode(segment))
        except (binascii.Error, ValueError):
            return _malformed("State token payload is not JSON")

        if not isinstance(document, dict):
            return _malformed("State token payload is not an object")

        organization_id = document.get("organizationId")
        user_id = document.get("userId")
        issued_at = document.get("issuedAt")
        if not isinstance(organization_id, str) or not organization_id:
            return _malformed("State token missing organizationId")
        if not isinstance(user_id, str) or not user_id:
            return _malformed("State token missing userId")
        # bool is an int subclass
        if not isinstance(issued_at, int) or isinstance(issued_at, bool):
            return _malformed("State token missing issuedAt")

        current_time = time.time() if now is None else now
        if issued_at - current_time > self.clock_skew:
            return _malformed("State token issued in the future")
        if current_time - issued_at > self.lifetime:
            return DecodeResult(
                status=DecodeStatus.EXPIRED_TOKEN,
                error="State token expired",
            )

        return DecodeResult(
            status=DecodeStatus.VALID,
            context=AuthorizationContext(
                organization_id=organization_id,
                user_id=user_id,
                issued_at=issued_at,
            ),
        )
