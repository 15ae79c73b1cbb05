"""Hookgate Webhook Signature Verification.

Verifies that an inbound webhook request was signed by the external platform
holding the shared signing secret.

Signing scheme:
- Base string: "v0:" + timestamp + ":" + raw body bytes
- Signature: "v0=" + hex(HMAC-SHA256(secret, base string))
- Timestamp: unix seconds, must be within 5 minutes of the local clock

Security Features:
- Signature computed over the raw body exactly as received
- Constant-time comparison to prevent timing attacks
- Fixed replay window bounding exposure of captured requests

Usage:
    from hookgate.webhooks import SignatureVerifier

    verifier = SignatureVerifier(secret=b"signing-secret")

    result = verifier.verify(body=await request.read(), headers=request.headers)
    if result.status is not VerificationStatus.VALID:
        return web.json_response({"error": "Invalid signature"}, status=401)
"""

from __future__ import annotations

import hashlib
import hmac
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

SIGNATURE_VERSION = "v0"

DEFAULT_TIMESTAMP_HEADER = "X-Signature-Timestamp"
DEFAULT_SIGNATURE_HEADER = "X-Signature"

# Replay window in seconds
REPLAY_WINDOW_SECONDS = 300


class VerificationStatus(Enum):
    """Outcome of webhook signature verification."""

    VALID = "valid"
    MISSING_HEADERS = "missing_headers"
    STALE_TIMESTAMP = "stale_timestamp"
    SIGNATURE_MISMATCH = "signature_mismatch"


@dataclass(frozen=True)
class VerificationResult:
    """Result of webhook signature verification."""

    status: VerificationStatus
    """Detailed verification status."""

    error: str | None = None
    """Error message if verification failed."""

    timestamp: int | None = None
    """Request timestamp if it could be parsed."""

    @property
    def valid(self) -> bool:
        return self.status is VerificationStatus.VALID

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.valid


def constant_time_compare(a: str | bytes, b: str | bytes) -> bool:
    """Compare two values without short-circuiting on the first difference.

    Strings are compared as their UTF-8 bytes. Values of different length
    compare unequal, and so do strings that have no UTF-8 form (lone
    surrogates from undecodable header bytes).
    """
    try:
        if isinstance(a, str):
            a = a.encode("utf-8")
        if isinstance(b, str):
            b = b.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(a, b)


def get_header(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup over a plain mapping."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


class SignatureVerifier:
    """HMAC-SHA256 webhook verifier with a fixed replay window.

    The verifier holds only immutable configuration and may be shared
    across concurrent requests.
    """

    def __init__(
        self,
        secret: bytes | str,
        tolerance: int = REPLAY_WINDOW_SECONDS,
        timestamp_header: str = DEFAULT_TIMESTAMP_HEADER,
        signature_header: str = DEFAULT_SIGNATURE_HEADER,
    ) -> None:
        """Initialize the verifier.

        Args:
            secret: The shared signing secret.
            tolerance: Maximum clock distance of the timestamp in seconds.
            timestamp_header: Header carrying the unix timestamp.
            signature_header: Header carrying the "v0=" signature.
        """
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        if not secret:
            raise ValueError("SignatureVerifier requires a non-empty secret")
        self._secret = secret
        self.tolerance = tolerance
        self.timestamp_header = timestamp_header
        self.signature_header = signature_header

    def sign(self, body: bytes, timestamp: int | str) -> str:
        """Compute the "v0=" signature for a body and timestamp.

        Args:
            body: The raw payload bytes.
            timestamp: Unix timestamp, as sent in the timestamp header.

        Returns:
            Signature string in header format.
        """
        base = f"{SIGNATURE_VERSION}:{timestamp}:".encode() + body
        digest = hmac.new(self._secret, base, hashlib.sha256).hexdigest()
        return f"{SIGNATURE_VERSION}={digest}"

    def headers_for(self, body: bytes, timestamp: int | None = None) -> dict[str, str]:
        """Build the signature headers a sender would attach to ``body``."""
        if timestamp is None:
            timestamp = int(time.time())
        return {
            self.timestamp_header: str(timestamp),
            self.signature_header: self.sign(body, timestamp),
        }

    def verify(
        self,
        body: bytes,
        headers: Mapping[str, str],
        now: float | None = None,
    ) -> VerificationResult:
        """Verify a signed request.

        Args:
            body: The raw request body bytes, unmodified.
            headers: Request headers.
            now: Current unix time, defaults to the system clock.

        Returns:
            VerificationResult with status and details.
        """
        raw_timestamp = get_header(headers, self.timestamp_header)
        signature = get_header(headers, self.signature_header)

        if not raw_timestamp or not signature:
            return VerificationResult(
                status=VerificationStatus.MISSING_HEADERS,
                error="Missing signature headers",
            )

        try:
            timestamp = int(raw_timestamp.strip())
        except ValueError:
            return VerificationResult(
                status=VerificationStatus.STALE_TIMESTAMP,
                error="Timestamp is not a unix time",
            )

        current_time = time.time() if now is None else now
        if abs(current_time - timestamp) > self.tolerance:
            return VerificationResult(
                status=VerificationStatus.STALE_TIMESTAMP,
                error=f"Timestamp {timestamp} is outside tolerance window",
                timestamp=timestamp,
            )

        # Sign the header value as received so the base string matches the sender's
        expected = self.sign(body, raw_timestamp)

        if constant_time_compare(expected, signature):
            return VerificationResult(
                status=VerificationStatus.VALID,
                timestamp=timestamp,
            )

        return VerificationResult(
            status=VerificationStatus.SIGNATURE_MISMATCH,
            error="Signature mismatch",
            timestamp=timestamp,
        )
