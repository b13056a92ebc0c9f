"""Pydantic schemas for master rules and suggested rules"""

from pydantic import BaseModel
from typing import Optional, Dict, Any
from uuid import UUID
from datetime import datetime

from models.master_rule import MasterRuleType, MasterRuleState, RuleScope
from models.project_match_rule import SuggestedRuleType, SuggestedRuleStatus


class MasterRuleResponse(BaseModel):
    id: UUID
    rule_type: MasterRuleType
    scope: RuleScope
    project_id: Optional[UUID] = None
    store_part_number: str
    supplier_part_number: str
    line_code: Optional[str] = None
    supplier_line_code: Optional[str] = None
    confidence: float
    state: MasterRuleState
    applied_count: int
    last_applied_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SuggestedRuleResponse(BaseModel):
    id: UUID
    project_id: UUID
    rule_type: SuggestedRuleType
    status: SuggestedRuleStatus
    pattern_key: str
    source_line_code: Optional[str] = None
    mapped_manufacturer: Optional[str] = None
    evidence_count: int
    config: Optional[Dict[str, Any]] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MiningResponse(BaseModel):
    """Outcome of a pattern mining run"""
    confirmed_pairs: int
    created: int
    updated: int
    unchanged: int
