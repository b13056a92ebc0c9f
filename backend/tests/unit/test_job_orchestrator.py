"""Unit tests for the matching job state machine and chunk orchestration"""

from datetime import timedelta
from typing import List, Optional, Sequence
from uuid import UUID

import pytest
from sqlalchemy import update

from config import get_settings
from jobs import (
    ALLOWED_TRANSITIONS,
    InvalidJobTransitionError,
    JobError,
    JobNotFoundError,
    JobOrchestrator,
    can_transition,
    is_terminal,
)
from jobs.stages import lease_seconds
from matching.ports import MatcherError, MatcherStagePort, StageResult
from models.base import utcnow
from models.matching_job import JobStatus, JobType, MatchingJob
from models.project import Project


class RecordingStage(MatcherStagePort):
    """Stage that records the chunks it sees and creates nothing."""

    def __init__(self, name: str, calls: List[tuple], fail_times: int = 0, budget_exhausted: bool = False):
        self.name = name
        self.calls = calls
        self.fail_times = fail_times
        self.budget_exhausted = budget_exhausted

    def run(self, project_id: UUID, store_item_ids: Sequence[UUID], job_id: Optional[UUID] = None) -> StageResult:
        self.calls.append((self.name, list(store_item_ids)))
        failures = sum(1 for name, _ in self.calls if name == self.name)
        if failures <= self.fail_times:
            raise MatcherError("supplier catalog query timed out")
        return StageResult(
            stage=self.name,
            processed=len(store_item_ids),
            cost_micros=250,
            budget_exhausted=self.budget_exhausted,
        )


def recording_factory(calls: List[tuple], **stage_kwargs):
    def build(stage_name, db):
        return RecordingStage(stage_name, calls, **stage_kwargs)
    return build


def run_to_completion(orchestrator: JobOrchestrator, job_id: UUID, limit: int = 50) -> list:
    outcomes = []
    for _ in range(limit):
        outcome = orchestrator.advance_job(job_id)
        outcomes.append(outcome)
        if outcome.done:
            break
    return outcomes


@pytest.fixture
def small_chunks(monkeypatch):
    monkeypatch.setattr("jobs.orchestrator.chunk_size", lambda stage_name: 2)


@pytest.fixture
def store_items(make_store_item):
    return [make_store_item(f"PN-{n:04d}") for n in range(5)]


class TestJobStatusStateMachine:
    """Test MatchingJob status transitions"""

    def test_job_status_enum_values(self):
        """Test JobStatus enum has all required values"""
        assert JobStatus.PENDING.value == "pending"
        assert JobStatus.PROCESSING.value == "processing"
        assert JobStatus.COMPLETED.value == "completed"
        assert JobStatus.FAILED.value == "failed"
        assert JobStatus.CANCELLED.value == "cancelled"

    def test_initial_state_transition(self):
        """Test new jobs can only start as PENDING"""
        assert can_transition(None, JobStatus.PENDING) is True
        assert can_transition(None, JobStatus.PROCESSING) is False

    def test_happy_path(self):
        """Test PENDING -> PROCESSING -> COMPLETED"""
        assert can_transition(JobStatus.PENDING, JobStatus.PROCESSING) is True
        assert can_transition(JobStatus.PROCESSING, JobStatus.COMPLETED) is True

    def test_cancellation_from_active_states(self):
        """Test PENDING and PROCESSING jobs can be cancelled"""
        assert can_transition(JobStatus.PENDING, JobStatus.CANCELLED) is True
        assert can_transition(JobStatus.PROCESSING, JobStatus.CANCELLED) is True

    def test_terminal_states(self):
        """Test COMPLETED, FAILED and CANCELLED have no exits"""
        for status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED):
            assert is_terminal(status) is True
            assert ALLOWED_TRANSITIONS[status] == []
        assert can_transition(JobStatus.FAILED, JobStatus.PROCESSING) is False


class TestJobLifecycle:
    """Test job creation, lookup and cancellation"""

    def test_create_snapshots_unmatched_count(self, db_session, project, store_items):
        """Test a new job records the unmatched item count and first stage"""
        job = JobOrchestrator(db_session).create_job(project.id, JobType.FULL, actor_id="ops")

        assert job.status == JobStatus.PENDING
        assert job.total_items == 5
        assert job.current_stage_name == "exact"
        assert job.created_by == "ops"

    def test_create_for_unknown_project(self, db_session):
        """Test creating a job for a missing project fails"""
        from uuid import uuid4
        with pytest.raises(JobError):
            JobOrchestrator(db_session).create_job(uuid4(), JobType.EXACT)

    def test_get_unknown_job(self, db_session):
        """Test unknown job ids raise JobNotFoundError"""
        from uuid import uuid4
        with pytest.raises(JobNotFoundError):
            JobOrchestrator(db_session).get_job(uuid4())

    def test_cancel_is_honoured_on_next_advance(self, db_session, project, store_items):
        """Test cancellation is a flag the next chunk call acts on"""
        calls = []
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory(calls))
        job = orchestrator.create_job(project.id, JobType.EXACT)

        orchestrator.cancel_job(job.id)
        assert job.status == JobStatus.PENDING

        outcome = orchestrator.advance_job(job.id)
        assert outcome.action == "cancelled"
        assert outcome.status == JobStatus.CANCELLED
        assert calls == []

    def test_cancel_finished_job_rejected(self, db_session, project):
        """Test a terminal job cannot be cancelled"""
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory([]))
        job = orchestrator.create_job(project.id, JobType.EXACT)
        run_to_completion(orchestrator, job.id)

        with pytest.raises(InvalidJobTransitionError):
            orchestrator.cancel_job(job.id)

    def test_list_jobs_filters(self, db_session, project):
        """Test listing by project and status"""
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory([]))
        first = orchestrator.create_job(project.id, JobType.EXACT)
        orchestrator.create_job(project.id, JobType.FUZZY)
        orchestrator.cancel_job(first.id)
        orchestrator.advance_job(first.id)

        assert len(orchestrator.list_jobs(project_id=project.id)) == 2
        cancelled = orchestrator.list_jobs(project_id=project.id, status=JobStatus.CANCELLED)
        assert [j.id for j in cancelled] == [first.id]


class TestChunkProcessing:
    """Test advance_job chunking, stage progression and completion"""

    def test_chunks_follow_the_cursor(self, db_session, project, store_items, small_chunks):
        """Test each call processes the next chunk in id order"""
        calls = []
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory(calls))
        job = orchestrator.create_job(project.id, JobType.EXACT)

        outcomes = run_to_completion(orchestrator, job.id)

        assert [o.action for o in outcomes] == ["chunk", "chunk", "chunk", "completed"]
        seen = [item_id for _, chunk in calls for item_id in chunk]
        assert seen == sorted(item.id for item in store_items)
        assert [len(chunk) for _, chunk in calls] == [2, 2, 1]

        db_session.refresh(job)
        assert job.status == JobStatus.COMPLETED
        assert job.processed_items == 5
        assert job.cost_spent_micros == 750
        assert job.progress_percentage == 100.0
        assert job.lease_expires_at is None
        assert job.completed_at is not None

    def test_first_chunk_moves_to_processing(self, db_session, project, store_items, small_chunks):
        """Test the first chunk starts the job and reports partial progress"""
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory([]))
        job = orchestrator.create_job(project.id, JobType.EXACT)

        outcome = orchestrator.advance_job(job.id)

        db_session.refresh(job)
        assert outcome.action == "chunk"
        assert job.status == JobStatus.PROCESSING
        assert job.started_at is not None
        assert job.cursor == str(sorted(item.id for item in store_items)[1])
        assert job.progress_percentage == pytest.approx(40.0)

    def test_full_job_runs_every_stage(self, db_session, project, make_store_item):
        """Test FULL jobs run exact, fuzzy, ai and supersession in order"""
        make_store_item("PN-0001")
        calls = []
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory(calls))
        job = orchestrator.create_job(project.id, JobType.FULL)

        outcomes = run_to_completion(orchestrator, job.id)

        assert [name for name, _ in calls] == ["exact", "fuzzy", "ai", "supersession"]
        assert [o.action for o in outcomes] == [
            "chunk", "stage_advanced", "chunk", "stage_advanced",
            "chunk", "stage_advanced", "chunk", "completed",
        ]
        db_session.refresh(job)
        assert job.stage_index == 3
        assert job.processed_items == 4

    def test_empty_project_completes_immediately(self, db_session, project):
        """Test a job with nothing to match completes on the first call"""
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory([]))
        job = orchestrator.create_job(project.id, JobType.EXACT)

        outcome = orchestrator.advance_job(job.id)

        assert outcome.action == "completed"
        assert outcome.status == JobStatus.COMPLETED

    def test_finished_job_is_noop(self, db_session, project):
        """Test advancing a terminal job does nothing"""
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory([]))
        job = orchestrator.create_job(project.id, JobType.EXACT)
        run_to_completion(orchestrator, job.id)

        assert orchestrator.advance_job(job.id).action == "noop"

    def test_lease_held_elsewhere(self, db_session, project, store_items):
        """Test a live lease makes a second worker back off"""
        calls = []
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory(calls))
        job = orchestrator.create_job(project.id, JobType.EXACT)
        job.lease_expires_at = utcnow() + timedelta(minutes=5)
        db_session.commit()

        outcome = orchestrator.advance_job(job.id)

        assert outcome.action == "lease_busy"
        assert calls == []

    def test_expired_lease_is_reclaimed(self, db_session, project, store_items):
        """Test a crashed worker's lease is taken over once expired"""
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory([]))
        job = orchestrator.create_job(project.id, JobType.EXACT)
        job.lease_expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        assert orchestrator.advance_job(job.id).action == "chunk"

    def test_chunk_discarded_when_lease_taken_over(self, db_session, project, store_items, small_chunks):
        """Test a worker that lost its lease mid-chunk commits no progress"""

        class SlowStage(RecordingStage):
            def run(self, project_id, store_item_ids, job_id=None):
                # Another worker reclaims the lease while this chunk is running
                db_session.execute(
                    update(MatchingJob).where(MatchingJob.id == job_id).values(lease_token="other-worker")
                )
                db_session.commit()
                return super().run(project_id, store_item_ids, job_id)

        calls = []
        orchestrator = JobOrchestrator(db_session, stage_factory=lambda name, db: SlowStage(name, calls))
        job = orchestrator.create_job(project.id, JobType.EXACT)

        outcome = orchestrator.advance_job(job.id)

        assert outcome.action == "lease_lost"
        assert len(calls) == 1
        db_session.refresh(job)
        assert job.cursor is None
        assert job.processed_items == 0
        assert job.cost_spent_micros == 0
        assert job.lease_token == "other-worker"

    def test_lease_token_released_after_chunk(self, db_session, project, store_items, small_chunks):
        """Test the lease token is held during a chunk and cleared afterwards"""
        seen_tokens = []

        class TokenStage(RecordingStage):
            def run(self, project_id, store_item_ids, job_id=None):
                seen_tokens.append(db_session.get(MatchingJob, job_id).lease_token)
                return super().run(project_id, store_item_ids, job_id)

        orchestrator = JobOrchestrator(db_session, stage_factory=lambda name, db: TokenStage(name, []))
        job = orchestrator.create_job(project.id, JobType.EXACT)

        assert orchestrator.advance_job(job.id).action == "chunk"

        db_session.refresh(job)
        assert seen_tokens[0]
        assert job.lease_token is None
        assert job.lease_expires_at is None


class TestLeaseSizing:
    """Test the lease covers a whole chunk of the stage"""

    def test_deterministic_stages_use_base_lease(self):
        settings = get_settings()
        assert lease_seconds("exact") == settings.JOB_LEASE_SECONDS
        assert lease_seconds("fuzzy") == settings.JOB_LEASE_SECONDS

    def test_ai_stages_cover_paced_calls(self):
        settings = get_settings()
        per_item = settings.AI_REQUEST_DELAY_SECONDS + settings.AI_REQUEST_TIMEOUT_SECONDS
        for stage_name, size in (("ai", settings.AI_CHUNK_SIZE), ("supersession", settings.SUPERSESSION_CHUNK_SIZE)):
            assert lease_seconds(stage_name) >= size * per_item
            assert lease_seconds(stage_name) > settings.JOB_LEASE_SECONDS


class TestFailureHandling:
    """Test retry accounting and terminal failure"""

    def test_job_fails_after_max_failures(self, db_session, project, store_items):
        """Test three consecutive failed chunks fail the job"""
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory([], fail_times=10))
        job = orchestrator.create_job(project.id, JobType.EXACT)

        outcomes = run_to_completion(orchestrator, job.id)

        assert [o.action for o in outcomes] == ["chunk_failed", "chunk_failed", "failed"]
        db_session.refresh(job)
        assert job.status == JobStatus.FAILED
        assert job.failure_count == 3
        assert "timed out" in job.error_message
        assert job.processed_items == 0

    def test_success_resets_failure_count(self, db_session, project, store_items):
        """Test a successful chunk clears earlier failures"""
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory([], fail_times=1))
        job = orchestrator.create_job(project.id, JobType.EXACT)

        first = orchestrator.advance_job(job.id)
        second = orchestrator.advance_job(job.id)

        assert first.action == "chunk_failed"
        assert second.action == "chunk"
        db_session.refresh(job)
        assert job.failure_count == 0
        assert job.error_message is None

    def test_budget_exhaustion_completes_job(self, db_session, project, store_items):
        """Test a stage stopping at its cost ceiling ends the job"""
        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory([], budget_exhausted=True))
        job = orchestrator.create_job(project.id, JobType.AI)

        outcome = orchestrator.advance_job(job.id)

        assert outcome.action == "completed"
        db_session.refresh(job)
        assert job.status == JobStatus.COMPLETED
        assert job.config["budget_exhausted"] is True


class TestActiveJobSelection:
    """Test the periodic tick's job selection"""

    def test_oldest_active_job_per_project(self, db_session, project):
        """Test one job per project is fired, oldest first"""
        other = Project(name="Other Store")
        db_session.add(other)
        db_session.commit()

        orchestrator = JobOrchestrator(db_session, stage_factory=recording_factory([]))
        first = orchestrator.create_job(project.id, JobType.EXACT)
        second = orchestrator.create_job(project.id, JobType.FUZZY)
        other_job = orchestrator.create_job(other.id, JobType.EXACT)
        done = orchestrator.create_job(other.id, JobType.FUZZY)

        base = utcnow()
        first.created_at = base - timedelta(minutes=4)
        done.created_at = base - timedelta(minutes=3)
        done.status = JobStatus.COMPLETED
        other_job.created_at = base - timedelta(minutes=2)
        second.created_at = base - timedelta(minutes=1)
        db_session.commit()

        assert orchestrator.advance_all_active_jobs() == [first.id, other_job.id]


class TestDefaultStages:
    """Test the production stage wiring end to end"""

    def test_exact_job_creates_candidates(self, db_session, project, make_store_item, make_supplier_item):
        """Test an EXACT job matches with master rules and deterministic joins"""
        make_store_item("AXLCH-8365", line_code="AXL")
        make_supplier_item("XBOAXLCH8365", line_code="XBO")
        orchestrator = JobOrchestrator(db_session)
        job = orchestrator.create_job(project.id, JobType.EXACT)

        run_to_completion(orchestrator, job.id)

        db_session.refresh(job)
        assert job.status == JobStatus.COMPLETED
        assert job.matches_found == 1
