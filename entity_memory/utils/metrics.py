"""Prometheus metrics for entity memory writes."""

from prometheus_client import Counter, Histogram

# ── Ingest ──────────────────────────────────────────────────────────

INGEST_TOTAL = Counter(
    "entity_memory_ingest_total",
    "Ingest calls by outcome",
    ["status"],  # success / failure
)

INGEST_RETRIES = Counter(
    "entity_memory_ingest_retries_total",
    "Ingest transactions retried after a deadlock or lock-wait timeout",
)

INGEST_LATENCY = Histogram(
    "entity_memory_ingest_latency_seconds",
    "End-to-end ingest latency including retries",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# ── Profile / render ────────────────────────────────────────────────

PROFILE_CONFLICTS = Counter(
    "entity_memory_profile_conflicts_total",
    "Optimistic profile updates that hit a version mismatch",
)

RENDERS_TOTAL = Counter(
    "entity_memory_renders_total",
    "Rendered-view recomputations",
    ["rendered"],  # true / false (nothing to render)
)
