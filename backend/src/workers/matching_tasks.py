"""Celery tasks driving matching jobs.

jobs.advance_active_jobs is fired by beat; it only enqueues work and returns.
jobs.process_chunk advances one job by one chunk. A chunk that finds the job
leased by another worker is a no-op, so duplicate deliveries are harmless.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from celery import shared_task

from database import SessionLocal
from jobs.exceptions import JobNotFoundError
from jobs.orchestrator import JobOrchestrator
from models.matching_job import MatchingJob
from .base import get_scoped_session, validate_project_id

logger = logging.getLogger(__name__)


@shared_task(name="jobs.process_chunk", bind=True)
def process_chunk_task(self, job_id: str, project_id: Optional[str] = None) -> Dict[str, Any]:
    """Advance one matching job by one chunk.

    Args:
        job_id: UUID string of the job
        project_id: Optional UUID string; when given the job must belong to it

    Returns:
        AdvanceOutcome as a dict

    Raises:
        ValueError: Unknown project, or the job belongs to another project
        JobNotFoundError: Unknown job
    """
    job_uuid = UUID(job_id)
    lookup = SessionLocal()
    try:
        job = lookup.get(MatchingJob, job_uuid)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        job_project = job.project_id
    finally:
        lookup.close()

    if project_id is not None and validate_project_id(project_id) != job_project:
        raise ValueError(f"Job {job_id} does not belong to project {project_id}")

    session = get_scoped_session(job_project)
    try:
        outcome = JobOrchestrator(session).advance_job(job_uuid)
    finally:
        session.close()

    logger.info(
        f"Chunk task finished: {outcome.action}",
        extra={"task_id": self.request.id, "project_id": job_project, "job_id": job_uuid},
    )
    return outcome.to_dict()


@shared_task(name="jobs.advance_active_jobs", bind=True)
def advance_active_jobs_task(self) -> List[str]:
    """Fire one chunk for the oldest active job of each project and return at once."""
    session = SessionLocal()
    try:
        job_ids = JobOrchestrator(session).advance_all_active_jobs()
    finally:
        session.close()

    for job_id in job_ids:
        process_chunk_task.delay(str(job_id))

    if job_ids:
        logger.info("Active jobs fired", extra={"task_id": self.request.id, "count": len(job_ids)})
    return [str(job_id) for job_id in job_ids]
