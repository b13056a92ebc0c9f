"""Pydantic schemas for human review"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import datetime

from models.match_candidate import MatchMethod, MatchStatus, TargetType, VendorAction, ReviewSource
from rules.learner import DecisionType


class DecisionCreate(BaseModel):
    """A single review decision"""
    decision: DecisionType
    corrected_part_number: Optional[str] = Field(None, max_length=128)
    reason: Optional[str] = None


class BulkDecisionItem(DecisionCreate):
    candidate_id: UUID


class BulkDecisionCreate(BaseModel):
    project_id: UUID
    decisions: List[BulkDecisionItem] = Field(..., min_length=1)


class BulkDecisionResponse(BaseModel):
    total: int
    succeeded: int
    failed: int
    errors: List[Dict[str, Any]] = Field(default_factory=list)


class MatchCandidateResponse(BaseModel):
    """Schema for match candidate response"""
    id: UUID
    project_id: UUID
    store_item_id: UUID
    target_type: TargetType
    target_id: str
    target_part_number: Optional[str] = None
    method: MatchMethod
    confidence: float
    status: MatchStatus
    matched_on: Optional[str] = None
    features: Optional[Dict[str, Any]] = None
    vendor_action: VendorAction
    corrected_supplier_part_number: Optional[str] = None
    review_source: Optional[ReviewSource] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ReviewStatsResponse(BaseModel):
    total_candidates: int
    by_status: Dict[str, int]
    by_method: Dict[str, Dict[str, int]]
    store_items: int
    confirmed_items: int
    confirmed_rate: float


class EnrichmentResponse(BaseModel):
    id: UUID
    match_candidate_id: UUID
    field_name: str
    field_value: Optional[str] = None
    confidence: Optional[float] = None
    source: str

    class Config:
        from_attributes = True
