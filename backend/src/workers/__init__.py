"""Background workers module for async task processing.

Matching jobs advance one chunk per task; Celery beat fires
jobs.advance_active_jobs, which enqueues jobs.process_chunk for the oldest
active job of each project.
"""

from .base import (
    validate_project_id,
    get_scoped_session,
)

__all__ = [
    "validate_project_id",
    "get_scoped_session",
]
