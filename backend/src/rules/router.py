"""Master rule and suggested rule API endpoints"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Optional, List
from uuid import UUID
import logging

from auth.dependencies import get_actor_id
from database import get_db
from models.master_rule import MasterRuleType, MasterRuleState
from models.project_match_rule import SuggestedRuleType, SuggestedRuleStatus
from .exceptions import DuplicateRuleError, RuleNotFoundError, InvalidTransitionError
from .learner import MasterRuleLearner
from .pattern_miner import PatternMiner
from .schemas import MasterRuleResponse, SuggestedRuleResponse, MiningResponse
from .suggested_rules import SuggestedRuleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/rules", tags=["rules"])


def _rule_error(e: Exception) -> HTTPException:
    if isinstance(e, RuleNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


# ============================================================================
# Master Rules
# ============================================================================

@router.get("/master", response_model=List[MasterRuleResponse])
def list_master_rules(
    project_id: Optional[UUID] = Query(None),
    rule_type: Optional[MasterRuleType] = Query(None),
    state: Optional[MasterRuleState] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return MasterRuleLearner(db).list_rules(project_id, rule_type, state, limit, offset)


@router.post("/master/{rule_id}/enable", response_model=MasterRuleResponse)
def enable_master_rule(rule_id: UUID, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    """
    Re-enable a disabled rule. Block rules take effect on existing candidates at once.

    Raises:
        HTTPException 404: Rule not found
        HTTPException 409: Rule already enabled, or an equivalent rule is enabled
    """
    try:
        return MasterRuleLearner(db).enable_rule(rule_id)
    except (RuleNotFoundError, InvalidTransitionError, DuplicateRuleError) as e:
        raise _rule_error(e)


@router.post("/master/{rule_id}/disable", response_model=MasterRuleResponse)
def disable_master_rule(rule_id: UUID, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    """
    Disable a wrong rule. Rules are never deleted.

    Raises:
        HTTPException 404: Rule not found
        HTTPException 409: Rule already disabled
    """
    try:
        return MasterRuleLearner(db).disable_rule(rule_id)
    except (RuleNotFoundError, InvalidTransitionError) as e:
        raise _rule_error(e)


# ============================================================================
# Suggested Rules
# ============================================================================

@router.get("/projects/{project_id}/suggestions", response_model=List[SuggestedRuleResponse])
def list_suggestions(
    project_id: UUID,
    rule_status: Optional[SuggestedRuleStatus] = Query(None, alias="status"),
    rule_type: Optional[SuggestedRuleType] = Query(None),
    db: Session = Depends(get_db),
):
    return SuggestedRuleService(db).list_rules(project_id, rule_status, rule_type)


@router.post("/projects/{project_id}/suggestions/mine", response_model=MiningResponse)
def mine_suggestions(project_id: UUID, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    """Mine the project's confirmed matches for punctuation and line-code patterns."""
    return PatternMiner(db).mine(project_id).to_dict()


@router.post("/projects/{project_id}/suggestions/{rule_id}/approve", response_model=SuggestedRuleResponse)
def approve_suggestion(
    project_id: UUID,
    rule_id: UUID,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    try:
        return SuggestedRuleService(db).approve(project_id, rule_id, actor_id)
    except (RuleNotFoundError, InvalidTransitionError) as e:
        raise _rule_error(e)


@router.post("/projects/{project_id}/suggestions/{rule_id}/reject", response_model=SuggestedRuleResponse)
def reject_suggestion(
    project_id: UUID,
    rule_id: UUID,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    try:
        return SuggestedRuleService(db).reject(project_id, rule_id, actor_id)
    except (RuleNotFoundError, InvalidTransitionError) as e:
        raise _rule_error(e)
