"""Pydantic schemas for vendor action rules"""

from pydantic import BaseModel, Field
from typing import Optional, Dict
from uuid import UUID
from datetime import datetime

from models.match_candidate import VendorAction


class VendorActionRuleCreate(BaseModel):
    supplier_line_code: str = Field(..., min_length=1, max_length=32)
    category_pattern: str = "*"
    subcategory_pattern: str = "*"
    action: VendorAction
    project_id: Optional[UUID] = Field(None, description="Omit for a global rule")


class VendorActionRuleResponse(BaseModel):
    id: UUID
    project_id: Optional[UUID] = None
    supplier_line_code: str
    category_pattern: str
    subcategory_pattern: str
    action: VendorAction
    active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class EvaluateRequest(BaseModel):
    """Ad-hoc evaluation of one (line code, category, subcategory) triple"""
    project_id: UUID
    line_code: str
    category: Optional[str] = None
    subcategory: Optional[str] = None


class EvaluateResponse(BaseModel):
    action: VendorAction


class ApplyResponse(BaseModel):
    total: int
    updated: int
    by_action: Dict[str, int]
