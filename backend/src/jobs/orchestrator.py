"""Chunked, resumable matching job orchestration.

A job advances one chunk per call. Each call claims a short lease with an
atomic UPDATE, runs the current stage over the next chunk of unmatched store
items after the cursor, and commits the candidates together with the job's
progress counters. No database lock is held while a stage waits on the AI
provider; the lease is what keeps a second worker away. AI stages get a lease
long enough for a whole chunk of paced calls, and a chunk only commits if
its worker still holds the lease token it claimed.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from domain.ai import LLMProviderPort
from matching.ports import MatcherError, StageResult
from matching.queries import count_unmatched, select_unmatched_ids
from models.base import utcnow
from models.matching_job import MatchingJob, JobStatus, JobType
from models.project import Project
from normalization import AliasCache
from observability.metrics import candidates_created_total, chunk_duration_seconds, job_chunks_total
from .exceptions import JobError, JobNotFoundError, InvalidJobTransitionError
from .job_status import ACTIVE_STATUSES, can_transition
from .stages import STAGE_PLANS, StageFactory, chunk_size, default_stage_factory, lease_seconds

logger = logging.getLogger(__name__)


@dataclass
class AdvanceOutcome:
    """Result of one advance_job call.

    Attributes:
        job_id: Job that was advanced
        status: Job status after the call
        action: What happened (lease_busy, lease_lost, cancelled, chunk,
            stage_advanced, completed, chunk_failed, failed)
        stage: Stage that ran or was finished
        result: Stage counters when a chunk ran
    """
    job_id: UUID
    status: JobStatus
    action: str
    stage: Optional[str] = None
    result: Dict[str, Any] = field(default_factory=dict)

    @property
    def done(self) -> bool:
        return self.status not in ACTIVE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": str(self.job_id),
            "status": self.status.value,
            "action": self.action,
            "stage": self.stage,
            "result": self.result,
            "done": self.done,
        }


class JobOrchestrator:
    """Creates, advances and cancels matching jobs.

    Args:
        db: Database session (the orchestrator commits)
        provider: LLM provider for the AI stage (defaults to settings)
        alias_cache: Line code alias cache shared by the exact and fuzzy stages
        stage_factory: Builds the runner for a stage name, injectable for tests
    """

    def __init__(
        self,
        db: Session,
        provider: Optional[LLMProviderPort] = None,
        alias_cache: Optional[AliasCache] = None,
        stage_factory: Optional[StageFactory] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        settings = get_settings()
        self.db = db
        self.stage_factory = stage_factory or default_stage_factory(provider, alias_cache, sleep)
        self.max_failures = settings.JOB_MAX_FAILURES

    # ---- lifecycle ----

    def create_job(
        self,
        project_id: UUID,
        job_type: JobType,
        config: Optional[dict] = None,
        actor_id: Optional[str] = None,
    ) -> MatchingJob:
        """Create a pending job and snapshot the project's unmatched count.

        Raises:
            JobError: Project does not exist
        """
        if self.db.get(Project, project_id) is None:
            raise JobError(f"Project {project_id} not found")

        job_type = JobType(job_type)
        job = MatchingJob(
            project_id=project_id,
            job_type=job_type,
            status=JobStatus.PENDING,
            stage_index=0,
            current_stage_name=STAGE_PLANS[job_type][0],
            total_items=count_unmatched(self.db, project_id),
            config=dict(config or {}),
            created_by=actor_id,
        )
        self.db.add(job)
        self.db.commit()

        logger.info(
            f"Matching job created: {job_type.value}",
            extra={"project_id": project_id, "job_id": job.id, "total_items": job.total_items},
        )
        return job

    def get_job(self, job_id: UUID) -> MatchingJob:
        job = self.db.get(MatchingJob, job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def list_jobs(
        self,
        project_id: Optional[UUID] = None,
        status: Optional[JobStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[MatchingJob]:
        stmt = select(MatchingJob)
        if project_id is not None:
            stmt = stmt.where(MatchingJob.project_id == project_id)
        if status is not None:
            stmt = stmt.where(MatchingJob.status == status)
        stmt = stmt.order_by(MatchingJob.created_at.desc()).limit(limit).offset(offset)
        return list(self.db.execute(stmt).scalars().all())

    def cancel_job(self, job_id: UUID) -> MatchingJob:
        """Request cancellation. The next advance_job call honours it.

        Raises:
            JobNotFoundError: Unknown job
            InvalidJobTransitionError: Job already finished
        """
        job = self.get_job(job_id)
        if not can_transition(job.status, JobStatus.CANCELLED):
            raise InvalidJobTransitionError(job.status.value, JobStatus.CANCELLED.value)
        job.cancellation_requested = True
        self.db.commit()
        logger.info("Job cancellation requested", extra={"project_id": job.project_id, "job_id": job_id})
        return job

    def advance_all_active_jobs(self) -> List[UUID]:
        """Ids of the oldest active job per project, to be fired by the caller."""
        rows = self.db.execute(
            select(MatchingJob.id, MatchingJob.project_id)
            .where(MatchingJob.status.in_(ACTIVE_STATUSES))
            .order_by(MatchingJob.created_at, MatchingJob.id)
        ).all()

        seen = set()
        job_ids = []
        for job_id, project_id in rows:
            if project_id in seen:
                continue
            seen.add(project_id)
            job_ids.append(job_id)
        return job_ids

    # ---- chunk processing ----

    def advance_job(self, job_id: UUID) -> AdvanceOutcome:
        """Run exactly one chunk of a job.

        Raises:
            JobNotFoundError: Unknown job
        """
        job = self.get_job(job_id)
        if job.status not in ACTIVE_STATUSES:
            return AdvanceOutcome(job_id, job.status, "noop", job.current_stage_name)

        plan = STAGE_PLANS[job.job_type]
        token = self._claim_lease(job_id, lease_seconds(plan[job.stage_index]))
        if token is None:
            logger.debug("Job lease held by another worker", extra={"job_id": job_id})
            return AdvanceOutcome(job_id, job.status, "lease_busy", job.current_stage_name)

        self.db.refresh(job)

        if job.cancellation_requested:
            self._finish(job, JobStatus.CANCELLED)
            self.db.commit()
            logger.info("Job cancelled", extra={"project_id": job.project_id, "job_id": job_id})
            return AdvanceOutcome(job_id, job.status, "cancelled", job.current_stage_name)

        if job.status == JobStatus.PENDING:
            job.status = JobStatus.PROCESSING
            job.started_at = utcnow()

        stage_name = plan[job.stage_index]
        job.current_stage_name = stage_name
        after_id = UUID(job.cursor) if job.cursor else None
        chunk = select_unmatched_ids(
            self.db, job.project_id, after_id=after_id, limit=chunk_size(stage_name)
        )

        if not chunk:
            return self._advance_stage(job, plan)

        project_id = job.project_id
        started = time.perf_counter()
        try:
            result = self.stage_factory(stage_name, self.db).run(project_id, chunk, job_id)
        except (MatcherError, SQLAlchemyError) as e:
            job_chunks_total.labels(stage=stage_name, outcome="failed").inc()
            return self._record_failure(job_id, project_id, stage_name, e)
        chunk_duration_seconds.labels(stage=stage_name).observe(time.perf_counter() - started)

        if not self._holds_lease(job_id, token):
            self.db.rollback()
            job_chunks_total.labels(stage=stage_name, outcome="lease_lost").inc()
            logger.warning(
                f"Job lease lost during stage {stage_name}, chunk discarded",
                extra={"project_id": project_id, "job_id": job_id, "stage": stage_name},
            )
            return AdvanceOutcome(job_id, self.get_job(job_id).status, "lease_lost", stage_name)

        self._record_progress(job, plan, chunk, result)
        if result.budget_exhausted:
            job.config = {**(job.config or {}), "budget_exhausted": True}
            self._finish(job, JobStatus.COMPLETED)
            action = "completed"
        else:
            action = "chunk"

        self.db.commit()
        candidates_created_total.labels(stage=stage_name).inc(result.candidates_created)
        job_chunks_total.labels(
            stage=stage_name, outcome="budget_exhausted" if result.budget_exhausted else "ok"
        ).inc()
        logger.info(
            f"Job chunk processed: {stage_name}",
            extra={"project_id": project_id, "job_id": job_id, **result.to_dict()},
        )
        return AdvanceOutcome(job_id, job.status, action, stage_name, result.to_dict())

    def _claim_lease(self, job_id: UUID, seconds: int) -> Optional[str]:
        """Take the lease if it is free or expired. Returns the lease token."""
        now = utcnow()
        token = uuid.uuid4().hex
        claimed = self.db.execute(
            update(MatchingJob)
            .where(
                MatchingJob.id == job_id,
                MatchingJob.status.in_(ACTIVE_STATUSES),
                or_(MatchingJob.lease_expires_at.is_(None), MatchingJob.lease_expires_at < now),
            )
            .values(lease_expires_at=now + timedelta(seconds=seconds), lease_token=token)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return token if claimed.rowcount == 1 else None

    def _holds_lease(self, job_id: UUID, token: str) -> bool:
        # Row stays locked until the progress commit
        held = self.db.execute(
            update(MatchingJob)
            .where(MatchingJob.id == job_id, MatchingJob.lease_token == token)
            .values(lease_token=token)
            .execution_options(synchronize_session=False)
        )
        return held.rowcount == 1

    def _advance_stage(self, job: MatchingJob, plan: List[str]) -> AdvanceOutcome:
        finished = plan[job.stage_index]
        job.cursor = None
        job.config = {**(job.config or {}), "stage_processed": 0}
        if job.stage_index + 1 >= len(plan):
            self._finish(job, JobStatus.COMPLETED)
            action = "completed"
        else:
            job.stage_index += 1
            job.current_stage_name = plan[job.stage_index]
            job.progress_percentage = round(job.stage_index / len(plan) * 100, 2)
            job.lease_expires_at = None
            job.lease_token = None
            action = "stage_advanced"
        self.db.commit()
        logger.info(
            f"Job stage finished: {finished}",
            extra={"project_id": job.project_id, "job_id": job.id, "next_stage": job.current_stage_name},
        )
        return AdvanceOutcome(job.id, job.status, action, finished)

    def _record_progress(self, job: MatchingJob, plan: List[str], chunk: List[UUID], result: StageResult) -> None:
        job.cursor = str(chunk[-1])
        job.processed_items += result.processed
        job.matches_found += result.candidates_created
        job.cost_spent_micros += result.cost_micros
        job.failure_count = 0
        job.error_message = None
        job.lease_expires_at = None
        job.lease_token = None

        config = dict(job.config or {})
        config["stage_processed"] = config.get("stage_processed", 0) + len(chunk)
        job.config = config

        stage_share = min(config["stage_processed"] / max(job.total_items, 1), 1.0)
        job.progress_percentage = round((job.stage_index + stage_share) / len(plan) * 100, 2)

    def _record_failure(self, job_id: UUID, project_id: UUID, stage_name: str, error: Exception) -> AdvanceOutcome:
        self.db.rollback()
        job = self.get_job(job_id)
        job.failure_count += 1
        job.error_message = f"{type(error).__name__}: {error}"[:1000]
        job.lease_expires_at = None
        job.lease_token = None
        if job.failure_count >= self.max_failures:
            self._finish(job, JobStatus.FAILED)
            action = "failed"
        else:
            action = "chunk_failed"
        self.db.commit()
        logger.error(
            f"Job chunk failed in stage {stage_name}: {error}",
            extra={"project_id": project_id, "job_id": job_id, "failure_count": job.failure_count},
        )
        return AdvanceOutcome(job_id, job.status, action, stage_name)

    def _finish(self, job: MatchingJob, status: JobStatus) -> None:
        if not can_transition(job.status, status):
            raise InvalidJobTransitionError(job.status.value, status.value)
        job.status = status
        job.completed_at = utcnow()
        job.lease_expires_at = None
        job.lease_token = None
        if status == JobStatus.COMPLETED:
            job.progress_percentage = 100.0
