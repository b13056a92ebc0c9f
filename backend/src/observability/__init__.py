"""Observability module for PartMatch.

Provides structured logging, metrics, and health checks.
"""

from .logging_config import configure_logging, get_logger
from .metrics import (
    candidates_created_total,
    job_chunks_total,
    chunk_duration_seconds,
    ai_calls_total,
    ai_latency_ms,
    ai_cost_micros_total,
    review_decisions_total,
    http_requests_total,
)
from .context import bind_request, current_actor_id, get_request_id
from .health import HealthStatus, ComponentHealth
from .middleware import RequestIDMiddleware

__all__ = [
    "configure_logging",
    "get_logger",
    "candidates_created_total",
    "job_chunks_total",
    "chunk_duration_seconds",
    "ai_calls_total",
    "ai_latency_ms",
    "ai_cost_micros_total",
    "review_decisions_total",
    "http_requests_total",
    "bind_request",
    "current_actor_id",
    "get_request_id",
    "HealthStatus",
    "ComponentHealth",
    "RequestIDMiddleware",
]
