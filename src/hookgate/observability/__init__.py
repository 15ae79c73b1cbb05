from hookgate.observability.metrics import (
    AUTHORIZE_DECISIONS,
    EVENTS_DISPATCHED,
    HANDLER_DURATION,
    SIGNATURE_VERIFICATIONS,
    generate_metrics,
    get_content_type,
)

__all__ = [
    "SIGNATURE_VERIFICATIONS",
    "EVENTS_DISPATCHED",
    "AUTHORIZE_DECISIONS",
    "HANDLER_DURATION",
    "generate_metrics",
    "get_content_type",
]
