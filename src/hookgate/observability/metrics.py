from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

SIGNATURE_VERIFICATIONS = Counter(
    "hookgate_signature_verifications_total",
    "Signature verification outcomes",
    ["endpoint", "status"],
)

EVENTS_DISPATCHED = Counter(
    "hookgate_events_dispatched_total",
    "Verified events by kind and routing result",
    ["endpoint", "kind", "result"],  # result: handled/acknowledged/failed/timeout
)

AUTHORIZE_DECISIONS = Counter(
    "hookgate_authorize_decisions_total",
    "Authorization flow decisions",
    ["leg", "outcome"],  # leg: start/callback
)

HANDLER_DURATION = Histogram(
    "hookgate_handler_duration_seconds",
    "Event handler latency",
    ["kind"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


def generate_metrics() -> bytes:
    return generate_latest()


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST
