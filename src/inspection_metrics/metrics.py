"""Self-instrumentation of the query client."""

from prometheus_client import Counter, Histogram


QUERY_ATTEMPTS = Counter(
    "inspection_vm_query_attempts_total",
    "HTTP attempts issued against the time-series query API.",
    labelnames=("outcome",),
)
QUERY_LATENCY = Histogram(
    "inspection_vm_query_latency_seconds",
    "Wall time of a single query including retries.",
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30),
)
SAMPLES_DROPPED = Counter(
    "inspection_vm_samples_dropped_total",
    "Samples excluded during normalization.",
    labelnames=("reason",),
)


__all__ = ["QUERY_ATTEMPTS", "QUERY_LATENCY", "SAMPLES_DROPPED"]
