"""Pydantic schemas for catalog import (store items, supplier items, interchanges)"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from uuid import UUID
from decimal import Decimal


class StoreItemRow(BaseModel):
    """One already-parsed store inventory row"""
    part_number: str = Field(..., min_length=1)
    line_code: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    cost: Optional[Decimal] = None


class SupplierItemRow(BaseModel):
    """One already-parsed supplier catalog row"""
    part_number: str = Field(..., min_length=1)
    line_code: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    cost: Optional[Decimal] = None


class InterchangeRow(BaseModel):
    """One already-parsed interchange bridge row"""
    theirs_part_number: str = Field(..., min_length=1)
    ours_part_number: str = Field(..., min_length=1)
    theirs_line_code: Optional[str] = None
    ours_line_code: Optional[str] = None
    source: str = "import"
    confidence: float = Field(1.0, ge=0.0, le=1.0)


class LineCodeAliasRow(BaseModel):
    line_code: str = Field(..., min_length=1)
    brand: str = Field(..., min_length=1)
    priority: int = 0


class ImportRequest(BaseModel):
    """Import payload; rows are validated one by one so bad rows only skip themselves"""
    rows: List[Dict[str, Any]]
    project_scoped: bool = True


class RowImportError(BaseModel):
    row: int
    part_number: Optional[str] = None
    error: str


class ImportResult(BaseModel):
    """Import outcome. errors is capped; error_count is the true total."""
    total_rows: int = 0
    imported_count: int = 0
    error_count: int = 0
    errors: List[RowImportError] = Field(default_factory=list)


class BackfillResult(BaseModel):
    project_id: UUID
    store_items_updated: int
    supplier_items_updated: int


class ProjectCreate(BaseModel):
    """Schema for creating a reconciliation project"""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    enable_rule_based_fuzzy_boosts: bool = True
    enable_punctuation_equivalence: bool = True
    fuzzy_hard_reject_enabled: bool = True


class ProjectResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    enable_rule_based_fuzzy_boosts: bool
    enable_punctuation_equivalence: bool
    fuzzy_hard_reject_enabled: bool
    created_by: Optional[str] = None

    class Config:
        from_attributes = True
