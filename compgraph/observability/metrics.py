"""Prometheus metrics for upstream fetches and graph resolutions."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

upstream_requests_total = Counter(
    "compgraph_upstream_requests_total",
    "Requests sent to the Kubernetes proxy, by outcome.",
    ["outcome"],  # ok | not_found | error
)

upstream_request_duration_seconds = Histogram(
    "compgraph_upstream_request_duration_seconds",
    "Latency of requests sent to the Kubernetes proxy.",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

scope_fallbacks_total = Counter(
    "compgraph_scope_fallbacks_total",
    "Namespaced lookups retried at cluster scope after a 404.",
)

resolutions_total = Counter(
    "compgraph_resolutions_total",
    "Graph resolutions, by traversal profile and outcome.",
    ["profile", "outcome"],  # outcome: complete | degraded | failed
)

graph_nodes = Histogram(
    "compgraph_graph_nodes",
    "Number of nodes in a resolved graph.",
    ["profile"],
    buckets=(1, 2, 3, 5, 10, 20, 50, 100, 250),
)

descendant_failures_total = Counter(
    "compgraph_descendant_failures_total",
    "Descendant references skipped during traversal, by error code.",
    ["error"],
)
