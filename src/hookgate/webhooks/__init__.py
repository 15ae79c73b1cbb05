"""Hookgate Webhook Verification Module.

Verifies inbound requests from the external platform and routes verified
events to registered handlers.

Security Features:
- HMAC-SHA256 signature over the raw body
- Constant-time signature comparison
- Fixed 5 minute replay window
- Fail closed on any verification failure

Usage:
    from hookgate.webhooks import EventRegistry, InteractionDispatcher, SignatureVerifier

    registry = EventRegistry()

    @registry.on("block_actions")
    async def handle_block_actions(event):
        ...

    dispatcher = InteractionDispatcher(
        verifier=SignatureVerifier(secret=b"signing-secret"),
        registry=registry,
    )
    response = await dispatcher.dispatch(body, headers)
"""

from hookgate.webhooks.dispatcher import (
    REJECTION_MESSAGES,
    InteractionDispatcher,
)
from hookgate.webhooks.events import (
    MALFORMED_PAYLOAD_POLICY,
    UNRECOGNIZED_KIND,
    DispatchResponse,
    EventRegistry,
    Handler,
    InteractionEvent,
    parse_event_callback,
    parse_interaction,
    url_verification,
)
from hookgate.webhooks.verifier import (
    DEFAULT_SIGNATURE_HEADER,
    DEFAULT_TIMESTAMP_HEADER,
    REPLAY_WINDOW_SECONDS,
    SignatureVerifier,
    VerificationResult,
    VerificationStatus,
    constant_time_compare,
    get_header,
)

__all__ = [
    # Verification
    "SignatureVerifier",
    "VerificationResult",
    "VerificationStatus",
    "constant_time_compare",
    "get_header",
    "DEFAULT_SIGNATURE_HEADER",
    "DEFAULT_TIMESTAMP_HEADER",
    "REPLAY_WINDOW_SECONDS",
    # Dispatch
    "InteractionDispatcher",
    "DispatchResponse",
    "REJECTION_MESSAGES",
    # Events
    "EventRegistry",
    "Handler",
    "InteractionEvent",
    "MALFORMED_PAYLOAD_POLICY",
    "UNRECOGNIZED_KIND",
    "parse_event_callback",
    "parse_interaction",
    "url_verification",
]
