"""Verified event dispatch.

The dispatcher is the envelope around integration business logic:

1. Verify the signature. Any failure is terminal (401) and nothing is parsed.
2. Parse the event envelope. Malformed bodies become unrecognized events.
3. Route by kind. Unknown kinds are acknowledged with 200 {"ok": true} so
   that new event kinds introduced by the platform never break the endpoint.

Handlers may be invoked more than once for the same event when the platform
redelivers after network ambiguity, so they must be idempotent.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping

import structlog

from hookgate.observability.metrics import (
    EVENTS_DISPATCHED,
    HANDLER_DURATION,
    SIGNATURE_VERIFICATIONS,
)
from hookgate.webhooks.events import (
    MALFORMED_PAYLOAD_POLICY,
    UNRECOGNIZED_KIND,
    DispatchResponse,
    EventRegistry,
    HandlerResult,
    InteractionEvent,
    parse_interaction,
)
from hookgate.webhooks.verifier import (
    SignatureVerifier,
    VerificationResult,
    VerificationStatus,
)

logger = structlog.get_logger()

DEFAULT_HANDLER_TIMEOUT = 10.0

# Response bodies for rejected requests
REJECTION_MESSAGES = {
    VerificationStatus.MISSING_HEADERS: "Missing signature headers",
    VerificationStatus.STALE_TIMESTAMP: "Request timestamp out of range",
    VerificationStatus.SIGNATURE_MISMATCH: "Invalid signature",
}


def _to_response(result: HandlerResult) -> DispatchResponse:
    if result is None:
        return DispatchResponse.ok()
    if isinstance(result, DispatchResponse):
        return result
    return DispatchResponse(status=200, body=dict(result))


class InteractionDispatcher:
    """Verifies, parses, and routes inbound platform events."""

    def __init__(
        self,
        verifier: SignatureVerifier,
        registry: EventRegistry,
        parser: Callable[[bytes], InteractionEvent] = parse_interaction,
        handler_timeout: float | None = DEFAULT_HANDLER_TIMEOUT,
        endpoint: str = "interactions",
    ) -> None:
        """Initialize the dispatcher.

        Args:
            verifier: Signature verifier holding the shared secret.
            registry: Handlers by event kind.
            parser: Turns a verified body into an envelope, must not raise.
            handler_timeout: Upper bound on a handler call in seconds, None for no bound.
            endpoint: Label used in logs and metrics.
        """
        self._verifier = verifier
        self._registry = registry
        self._parser = parser
        self._handler_timeout = handler_timeout
        self._endpoint = endpoint

    @property
    def registry(self) -> EventRegistry:
        return self._registry

    def _reject(self, result: VerificationResult) -> DispatchResponse:
        logger.warning(
            "Rejected webhook request",
            endpoint=self._endpoint,
            status=result.status.value,
            reason=result.error,
            timestamp=result.timestamp,
        )
        return DispatchResponse.error(401, REJECTION_MESSAGES[result.status])

    async def dispatch(
        self,
        body: bytes,
        headers: Mapping[str, str],
        now: float | None = None,
    ) -> DispatchResponse:
        """Verify and dispatch a single request.

        Args:
            body: Raw request body bytes, unmodified.
            headers: Request headers.
            now: Current unix time, defaults to the system clock.

        Returns:
            DispatchResponse to send back to the platform.
        """
        result = self._verifier.verify(body, headers, now=now)
        SIGNATURE_VERIFICATIONS.labels(
            endpoint=self._endpoint, status=result.status.value
        ).inc()
        if not result.valid:
            return self._reject(result)

        event = self._parser(body)
        if not event.recognized:
            logger.info(
                "Acknowledging unparseable event",
                endpoint=self._endpoint,
                policy=MALFORMED_PAYLOAD_POLICY,
                body_size=len(body),
            )

        handler = self._registry.resolve(event.kind)
        if handler is None:
            # Unregistered kinds share one label
            EVENTS_DISPATCHED.labels(
                endpoint=self._endpoint, kind=UNRECOGNIZED_KIND, result="acknowledged"
            ).inc()
            logger.debug("No handler for event kind", endpoint=self._endpoint, kind=event.kind)
            return DispatchResponse.ok()

        started = time.perf_counter()
        try:
            if self._handler_timeout:
                handler_result = await asyncio.wait_for(handler(event), self._handler_timeout)
            else:
                handler_result = await handler(event)
        except asyncio.TimeoutError:
            EVENTS_DISPATCHED.labels(
                endpoint=self._endpoint, kind=event.kind, result="timeout"
            ).inc()
            logger.error(
                "Event handler timed out",
                endpoint=self._endpoint,
                kind=event.kind,
                timeout=self._handler_timeout,
            )
            return DispatchResponse.error(504, "Handler timed out")
        except Exception as e:
            EVENTS_DISPATCHED.labels(
                endpoint=self._endpoint, kind=event.kind, result="failed"
            ).inc()
            # Internal details stay in the log
            logger.error(
                "Event handler failed",
                endpoint=self._endpoint,
                kind=event.kind,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DispatchResponse.error(500, "Handler failed")
        finally:
            HANDLER_DURATION.labels(kind=event.kind).observe(time.perf_counter() - started)

        EVENTS_DISPATCHED.labels(
            endpoint=self._endpoint, kind=event.kind, result="handled"
        ).inc()
        return _to_response(handler_result)
