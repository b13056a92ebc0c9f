"""MatchingJob SQLAlchemy model"""

import uuid
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Text, ForeignKey, Integer, Float, Boolean, DateTime, BigInteger, Index, Uuid,
    Enum as SQLEnum,
)

from .base import Base, PortableJSONB, utcnow, isoformat_or_none


class JobStatus(str, PyEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobType(str, PyEnum):
    """Selects which matcher stages a job runs"""
    EXACT = "exact"
    FUZZY = "fuzzy"
    AI = "ai"
    SUPERSESSION = "supersession"
    FULL = "full"


class MatchingJob(Base):
    """Long-running, resumable matching job advanced one chunk at a time.

    cursor is the id of the last store item handed to the current stage;
    it is reset whenever the job moves to its next stage. lease_expires_at
    is set while a worker is processing a chunk so two workers never run the
    same job concurrently; lease_token identifies the worker holding it, and
    a chunk only commits while its worker still holds the token.
    """
    __tablename__ = "matching_job"
    __table_args__ = (
        Index("ix_matching_job_status_created", "status", "created_at"),
        Index("ix_matching_job_project", "project_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("project.id", ondelete="CASCADE"), nullable=False)
    job_type = Column(SQLEnum(JobType, name="matching_job_type"), nullable=False)
    status = Column(SQLEnum(JobStatus, name="matching_job_status"), nullable=False, default=JobStatus.PENDING)

    stage_index = Column(Integer, nullable=False, default=0)
    current_stage_name = Column(Text, nullable=True)
    cursor = Column(Text, nullable=True)

    total_items = Column(Integer, nullable=False, default=0)
    processed_items = Column(Integer, nullable=False, default=0)
    matches_found = Column(Integer, nullable=False, default=0)
    progress_percentage = Column(Float, nullable=False, default=0.0)
    cost_spent_micros = Column(BigInteger, nullable=False, default=0)

    config = Column(PortableJSONB, nullable=True)
    cancellation_requested = Column(Boolean, nullable=False, default=False)
    lease_expires_at = Column(DateTime(timezone=True), nullable=True)
    lease_token = Column(Text, nullable=True)
    failure_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    created_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def match_rate(self) -> float:
        if not self.processed_items:
            return 0.0
        return round(self.matches_found / self.processed_items * 100, 2)

    def to_dict(self):
        """Convert job to dictionary representation"""
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "job_type": self.job_type.value,
            "status": self.status.value,
            "stage_index": self.stage_index,
            "current_stage_name": self.current_stage_name,
            "total_items": self.total_items,
            "processed_items": self.processed_items,
            "matches_found": self.matches_found,
            "progress_percentage": self.progress_percentage,
            "match_rate": self.match_rate,
            "cost_spent_micros": self.cost_spent_micros,
            "config": self.config,
            "cancellation_requested": self.cancellation_requested,
            "failure_count": self.failure_count,
            "error_message": self.error_message,
            "created_by": self.created_by,
            "created_at": isoformat_or_none(self.created_at),
            "started_at": isoformat_or_none(self.started_at),
            "completed_at": isoformat_or_none(self.completed_at),
        }

    def __repr__(self):
        return (
            f"<MatchingJob(id={self.id}, type={self.job_type}, status={self.status}, "
            f"stage={self.current_stage_name}, {self.processed_items}/{self.total_items})>"
        )
