"""
Prometheus Metrics
==================
Counters and histograms exported on /metrics.
"""

from prometheus_client import Counter, Histogram

COMPLETIONS = Counter(
    "gateway_completions_total",
    "Completions served, by path taken",
    ["path"],
)

PROVIDER_ATTEMPTS = Counter(
    "gateway_provider_attempts_total",
    "Upstream provider calls, by outcome",
    ["provider", "outcome"],
)

COMPLETION_LATENCY = Histogram(
    "gateway_completion_duration_seconds",
    "End-to-end completion latency",
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120),
)
