"""Health check utilities.

The database is required for every request. The Celery broker is only
needed for job ticks and asynchronous rule learning, so a broker outage
degrades the service instead of taking it down.
"""

import time
from enum import Enum
from typing import Dict, Optional
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import redis

from config import get_settings
from .logging_config import get_logger

logger = get_logger(__name__)

REQUIRED_COMPONENTS = ("database",)


class HealthStatus(str, Enum):
    """Health check status enum."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class ComponentHealth:
    """Health status for a single component."""
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None


def check_database_health(db: Session) -> ComponentHealth:
    """Check database connectivity.

    Args:
        db: Database session

    Returns:
        ComponentHealth: Database health status
    """
    try:
        start = time.time()
        db.execute(text("SELECT 1"))
        latency_ms = (time.time() - start) * 1000

        return ComponentHealth(
            status=HealthStatus.HEALTHY,
            message="Database connection OK",
            latency_ms=round(latency_ms, 2)
        )
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        return ComponentHealth(
            status=HealthStatus.UNHEALTHY,
            message=f"Database error: {str(e)}"
        )


def check_broker_health(broker_url: Optional[str] = None) -> ComponentHealth:
    """Check the Celery broker (Redis).

    Returns:
        ComponentHealth: Broker health status
    """
    try:
        client = redis.from_url(broker_url or get_settings().CELERY_BROKER_URL, socket_timeout=2)

        start = time.time()
        client.ping()
        latency_ms = (time.time() - start) * 1000

        return ComponentHealth(
            status=HealthStatus.HEALTHY,
            message="Broker connection OK",
            latency_ms=round(latency_ms, 2)
        )
    except (redis.RedisError, ValueError) as e:
        logger.warning(f"Broker health check failed: {e}")
        return ComponentHealth(
            status=HealthStatus.UNHEALTHY,
            message=f"Broker error: {str(e)}"
        )


def get_overall_health(components: Dict[str, ComponentHealth]) -> HealthStatus:
    """Determine overall health from component statuses.

    Args:
        components: Dictionary of component health statuses

    Returns:
        HealthStatus: UNHEALTHY if a required component is down, DEGRADED
        if an optional one is, HEALTHY otherwise
    """
    if all(c.status == HealthStatus.HEALTHY for c in components.values()):
        return HealthStatus.HEALTHY

    if any(
        components[name].status == HealthStatus.UNHEALTHY
        for name in REQUIRED_COMPONENTS
        if name in components
    ):
        return HealthStatus.UNHEALTHY

    return HealthStatus.DEGRADED
