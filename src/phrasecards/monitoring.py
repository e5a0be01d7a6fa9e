"""Monitoring configuration for the flashcard backend."""
from prometheus_client import Counter, Gauge, start_http_server

# Study metrics
answers_recorded = Counter(
    "phrasecards_answers_total",
    "Total number of answers folded into progress",
    ["language", "result"],
)

failed_phrases = Gauge(
    "phrasecards_failed_phrases",
    "Number of phrases in the failed set of the active session",
    ["language"],
)

review_sessions = Counter(
    "phrasecards_review_sessions_total",
    "Total number of failed-phrase review sessions started",
    ["language"],
)

# Identity metrics
auth_events = Counter(
    "phrasecards_auth_events_total",
    "Identity operations by outcome",
    ["operation", "outcome"],
)

# Persistence metrics
store_writes = Counter(
    "phrasecards_store_writes_total",
    "Total number of document store writes",
    ["operation"],
)

store_errors = Counter(
    "phrasecards_store_errors_total",
    "Total number of document store failures",
    ["operation"],
)

outbox_retries = Counter(
    "phrasecards_outbox_retries_total",
    "Total number of progress write retries",
)

outbox_pending = Gauge(
    "phrasecards_outbox_pending",
    "1 while a progress snapshot is waiting to be written",
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
