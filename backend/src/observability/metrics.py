"""Prometheus metrics for PartMatch.

Defines operational metrics for matching jobs, AI spend and human review.
"""

from prometheus_client import Counter, Histogram

# Matching stage metrics
candidates_created_total = Counter(
    "partmatch_candidates_created_total",
    "Match candidates inserted by matcher stages",
    ["stage"]  # stage: exact|fuzzy|ai
)

job_chunks_total = Counter(
    "partmatch_job_chunks_total",
    "Job chunks processed",
    ["stage", "outcome"]  # outcome: ok|failed|budget_exhausted
)

chunk_duration_seconds = Histogram(
    "partmatch_chunk_duration_seconds",
    "Time spent running one stage over one chunk",
    ["stage"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0]
)

# AI call metrics
ai_calls_total = Counter(
    "partmatch_ai_calls_total",
    "Total AI API calls",
    ["call_type", "provider", "status"]  # status: SUCCEEDED|FAILED
)

ai_latency_ms = Histogram(
    "partmatch_ai_latency_ms",
    "AI API call latency in milliseconds",
    ["call_type", "provider"],
    buckets=[50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000]
)

ai_cost_micros_total = Counter(
    "partmatch_ai_cost_micros_total",
    "Total AI cost in micros (1 micro = 0.000001 USD)",
    ["call_type", "provider"]
)

# Review metrics
review_decisions_total = Counter(
    "partmatch_review_decisions_total",
    "Human review decisions recorded",
    ["decision", "source"]  # decision: CONFIRM|REJECT, source: UI|BULK
)

# HTTP metrics
http_requests_total = Counter(
    "partmatch_http_requests_total",
    "HTTP requests served",
    ["method", "status_class"]  # status_class: 2xx|4xx|5xx
)

http_request_duration_seconds = Histogram(
    "partmatch_http_request_duration_seconds",
    "HTTP request latency",
    ["method"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)
