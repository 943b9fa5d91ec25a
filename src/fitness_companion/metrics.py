"""Sync diagnostics exported as Prometheus counters."""

from prometheus_client import CollectorRegistry, Counter, generate_latest

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REMOTE_FAILURES = Counter(
    "sync_remote_failures_total",
    "Remote store calls that failed and were degraded to local data",
    ["table", "operation"],
    registry=CUSTOM_REGISTRY,
)
RECORDS_PUSHED = Counter(
    "sync_records_pushed_total",
    "Locally held records inserted remotely during reconciliation",
    ["table"],
    registry=CUSTOM_REGISTRY,
)
CORRUPT_CACHE_READS = Counter(
    "sync_corrupt_cache_reads_total",
    "Local cache payloads that could not be decoded",
    ["key"],
    registry=CUSTOM_REGISTRY,
)


def render_metrics() -> bytes:
    """Text exposition of the sync counters."""
    return generate_latest(CUSTOM_REGISTRY)
