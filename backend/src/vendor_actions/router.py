"""Vendor action API endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
import logging

from auth.dependencies import get_actor_id
from database import get_db
from .evaluator import evaluate_vendor_action
from .schemas import (
    VendorActionRuleCreate,
    VendorActionRuleResponse,
    EvaluateRequest,
    EvaluateResponse,
    ApplyResponse,
)
from .service import VendorActionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/vendor-actions", tags=["vendor-actions"])


@router.get("/projects/{project_id}/rules", response_model=List[VendorActionRuleResponse])
def list_rules(project_id: UUID, db: Session = Depends(get_db)):
    """Active rules visible to a project (its own plus global)."""
    return VendorActionService(db).load_rules(project_id)


@router.post("/rules", response_model=VendorActionRuleResponse, status_code=201)
def create_rule(
    payload: VendorActionRuleCreate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return VendorActionService(db).create_rule(
        payload.supplier_line_code,
        payload.action,
        payload.category_pattern,
        payload.subcategory_pattern,
        payload.project_id,
    )


@router.post("/evaluate", response_model=EvaluateResponse)
def evaluate(payload: EvaluateRequest, db: Session = Depends(get_db)):
    rules = VendorActionService(db).load_rules(payload.project_id)
    action = evaluate_vendor_action(rules, payload.line_code, payload.category, payload.subcategory, payload.project_id)
    return EvaluateResponse(action=action)


@router.post("/projects/{project_id}/apply", response_model=ApplyResponse)
def apply_to_confirmed(
    project_id: UUID,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """Tag every CONFIRMED supplier match of the project. Safe to repeat."""
    return VendorActionService(db).apply_to_confirmed_matches(project_id)
