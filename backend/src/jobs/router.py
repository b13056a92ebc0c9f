"""Matching job API endpoints"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from auth.dependencies import get_actor_id
from database import get_db
from models.matching_job import JobStatus
from .exceptions import JobError, JobNotFoundError, InvalidJobTransitionError
from .orchestrator import JobOrchestrator
from .schemas import JobCreate, JobResponse, JobListResponse, TickResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])


def fire_job(job_id: UUID) -> None:
    """Enqueue one chunk for a job without waiting for it."""
    from workers.matching_tasks import process_chunk_task

    process_chunk_task.delay(str(job_id))


@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
def create_job(
    payload: JobCreate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """
    Create a matching job. The scheduler tick picks it up.

    Raises:
        HTTPException 404: Project not found
    """
    try:
        job = JobOrchestrator(db).create_job(payload.project_id, payload.job_type, payload.config, actor_id)
    except JobError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return job


@router.get("", response_model=JobListResponse)
def list_jobs(
    project_id: Optional[UUID] = Query(None),
    job_status: Optional[JobStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    jobs = JobOrchestrator(db).list_jobs(project_id, job_status, limit, offset)
    return JobListResponse(items=jobs, total=len(jobs))


@router.get("/{job_id}", response_model=JobResponse)
def get_job(job_id: UUID, db: Session = Depends(get_db)):
    try:
        return JobOrchestrator(db).get_job(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{job_id}/cancel", response_model=JobResponse)
def cancel_job(
    job_id: UUID,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """
    Request cancellation of a job.

    Raises:
        HTTPException 404: Job not found
        HTTPException 409: Job already finished
    """
    try:
        job = JobOrchestrator(db).cancel_job(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidJobTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    logger.info("Job cancel requested via API", extra={"job_id": job_id, "actor_id": actor_id})
    return job


@router.post("/tick", response_model=TickResponse)
def tick(db: Session = Depends(get_db)):
    """
    Fire one chunk for the oldest active job of each project.

    For external schedulers; Celery beat does the same every JOB_TICK_INTERVAL_SECONDS.
    """
    job_ids = JobOrchestrator(db).advance_all_active_jobs()
    for job_id in job_ids:
        fire_job(job_id)
    return TickResponse(fired=job_ids, count=len(job_ids))
