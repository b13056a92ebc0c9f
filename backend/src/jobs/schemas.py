"""Pydantic schemas for matching jobs"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import datetime

from models.matching_job import JobStatus, JobType


class JobCreate(BaseModel):
    """Schema for creating a matching job"""
    project_id: UUID
    job_type: JobType = JobType.FULL
    config: Dict[str, Any] = Field(default_factory=dict)


class JobResponse(BaseModel):
    """Schema for job response"""
    id: UUID
    project_id: UUID
    job_type: JobType
    status: JobStatus
    stage_index: int
    current_stage_name: Optional[str] = None
    total_items: int
    processed_items: int
    matches_found: int
    progress_percentage: float
    match_rate: float
    cost_spent_micros: int
    config: Optional[Dict[str, Any]] = None
    cancellation_requested: bool
    failure_count: int
    error_message: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class JobListResponse(BaseModel):
    items: List[JobResponse]
    total: int


class TickResponse(BaseModel):
    """Jobs fired by a scheduler tick"""
    fired: List[UUID]
    count: int
