"""
AICallLog model - Immutable log of all LLM API calls.

Tracks costs, latency and errors for budget control and debugging.
"""

import uuid
from enum import Enum as PyEnum

from sqlalchemy import Column, Text, Integer, BigInteger, ForeignKey, DateTime, Index, Uuid, Enum as SQLEnum

from .base import Base, PortableJSONB, utcnow


class AICallStatus(str, PyEnum):
    """Status of AI call execution"""
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class AICallLog(Base):
    """
    AI Call Log - Immutable record of every LLM API call.

    Used for:
    - Per-job cost ceiling enforcement (sum of cost_micros by job_id)
    - Performance monitoring (latency, token usage)
    - Error analysis
    """
    __tablename__ = "ai_call_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("project.id", ondelete="CASCADE"), nullable=False)
    job_id = Column(Uuid(as_uuid=True), ForeignKey("matching_job.id", ondelete="SET NULL"), nullable=True)
    store_item_id = Column(Uuid(as_uuid=True), nullable=True)

    call_type = Column(Text, nullable=False)  # AICallType value
    provider = Column(Text, nullable=False)  # e.g., 'openai'
    model = Column(Text, nullable=False)  # e.g., 'gpt-4o-mini'
    input_hash = Column(Text, nullable=True)

    # Usage metrics
    prompt_tokens = Column(Integer, nullable=True)
    completion_tokens = Column(Integer, nullable=True)
    total_tokens = Column(Integer, nullable=True)

    # Cost and performance
    cost_micros = Column(BigInteger, nullable=False, default=0)  # micro-USD
    latency_ms = Column(Integer, nullable=True)

    status = Column(SQLEnum(AICallStatus, name="ai_call_status"), nullable=False, default=AICallStatus.SUCCEEDED)
    error_json = Column(PortableJSONB, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        # Budget query: sum(cost_micros) WHERE job_id=X
        Index("ix_ai_call_log_job", "job_id"),
        Index("ix_ai_call_log_project_created", "project_id", "created_at"),
        Index("ix_ai_call_log_input_hash", "input_hash"),
    )

    def __repr__(self):
        return (
            f"<AICallLog(id={self.id}, project_id={self.project_id}, "
            f"type={self.call_type}, provider={self.provider}, "
            f"status={self.status}, cost_micros={self.cost_micros})>"
        )
