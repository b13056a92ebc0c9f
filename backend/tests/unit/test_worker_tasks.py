"""Unit tests for the Celery task bodies (run eagerly, no broker)"""

from datetime import timedelta
from uuid import uuid4

import pytest

from jobs import JobOrchestrator
from jobs.exceptions import JobNotFoundError
from models.base import utcnow
from models.match_candidate import MatchCandidate, MatchMethod, MatchStatus, TargetType
from models.matching_job import JobStatus, JobType, MatchingJob
from models.project import Project
from rules.tasks import mine_patterns_task
from workers.celery_app import celery_app
from workers import validate_project_id
from workers.matching_tasks import advance_active_jobs_task, process_chunk_task


@pytest.fixture
def exact_job_id(db_session, project, make_store_item):
    make_store_item("PN-0001")
    job_id = JobOrchestrator(db_session).create_job(project.id, JobType.EXACT, {}, "scheduler").id
    # Tasks open their own sessions on the shared connection
    db_session.commit()
    return job_id


class TestProcessChunkTask:
    """Test jobs.process_chunk"""

    def test_advances_job(self, db_session, exact_job_id):
        """Test one call runs one chunk and reports the outcome"""
        outcome = process_chunk_task(str(exact_job_id))

        assert outcome["action"] in ("chunk", "stage_advanced", "completed")
        job = db_session.get(MatchingJob, exact_job_id)
        assert job.status in (JobStatus.PROCESSING, JobStatus.COMPLETED)

    def test_wrong_project_refused(self, db_session, exact_job_id):
        """Test a job id paired with an unknown project is rejected"""
        with pytest.raises(ValueError):
            process_chunk_task(str(exact_job_id), str(uuid4()))

    def test_unknown_job(self, db_session):
        """Test a missing job raises JobNotFoundError"""
        with pytest.raises(JobNotFoundError):
            process_chunk_task(str(uuid4()))


class TestAdvanceActiveJobsTask:
    """Test the beat-driven fan-out"""

    def test_fires_one_chunk_per_active_job(self, db_session, exact_job_id, monkeypatch):
        """Test active jobs are enqueued and the task returns immediately"""
        enqueued = []
        monkeypatch.setattr(process_chunk_task, "delay", lambda job_id: enqueued.append(job_id))

        fired = advance_active_jobs_task()

        assert fired == [str(exact_job_id)]
        assert enqueued == [str(exact_job_id)]



class TestMinePatternsTask:
    """Test the scheduled pattern mining"""

    def _confirm(self, db_session, project_id, make_store_item, make_supplier_item, decided_at):
        store = make_store_item("ABC-1", "DOR", project_id=project_id)
        supplier = make_supplier_item("ABC1", "DOR", project_id=project_id)
        db_session.add(MatchCandidate(
            project_id=project_id,
            store_item_id=store.id,
            target_type=TargetType.SUPPLIER,
            target_id=str(supplier.id),
            target_part_number=supplier.part_number,
            method=MatchMethod.EXACT_NORMALIZED,
            confidence=1.0,
            status=MatchStatus.CONFIRMED,
            decided_at=decided_at,
        ))
        db_session.commit()

    def test_mines_projects_with_recent_confirmations(self, db_session, project, make_store_item,
                                                      make_supplier_item):
        """Test only projects confirmed within the window are mined"""
        stale = Project(name="Stale Store")
        db_session.add(stale)
        db_session.commit()
        self._confirm(db_session, project.id, make_store_item, make_supplier_item, utcnow())
        self._confirm(db_session, stale.id, make_store_item, make_supplier_item, utcnow() - timedelta(days=3))

        results = mine_patterns_task(window_seconds=3600)

        assert list(results) == [str(project.id)]
        assert results[str(project.id)]["confirmed_pairs"] == 1

    def test_nothing_new(self, db_session):
        """Test an idle catalog mines nothing"""
        assert mine_patterns_task() == {}

    def test_scheduled_by_beat(self):
        """Test mining runs on the beat schedule"""
        entry = celery_app.conf.beat_schedule["mine-patterns"]
        assert entry["task"] == "rules.mine_patterns"


class TestValidateProjectId:
    """Test task argument validation"""

    def test_valid(self, db_session, project):
        """Test an existing project id is returned as a UUID"""
        project_id = project.id
        db_session.commit()
        assert validate_project_id(str(project_id)) == project_id

    def test_malformed(self, db_session):
        """Test a non-UUID string is rejected"""
        with pytest.raises(ValueError, match="Invalid project_id format"):
            validate_project_id("not-a-uuid")
