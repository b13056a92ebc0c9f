"""Human review API endpoints"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Optional, List
from uuid import UUID
import logging

from auth.dependencies import get_actor_id
from database import get_db
from models.match_candidate import MatchMethod, MatchStatus
from domain.ai import BudgetGateError
from matching.ai_matcher import CatalogEnricher
from matching.ports import MatcherError
from .exceptions import ReviewError
from .schemas import (
    DecisionCreate,
    BulkDecisionCreate,
    BulkDecisionResponse,
    MatchCandidateResponse,
    ReviewStatsResponse,
    EnrichmentResponse,
)
from .service import DecisionRequest, ReviewService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/review", tags=["review"])


@router.get("/projects/{project_id}/candidates", response_model=List[MatchCandidateResponse])
def list_candidates(
    project_id: UUID,
    candidate_status: Optional[MatchStatus] = Query(None, alias="status"),
    method: Optional[MatchMethod] = Query(None),
    min_confidence: Optional[float] = Query(None, ge=0.0, le=1.0),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return ReviewService(db).list_candidates(project_id, candidate_status, method, min_confidence, limit, offset)


@router.get("/projects/{project_id}/stats", response_model=ReviewStatsResponse)
def review_stats(project_id: UUID, db: Session = Depends(get_db)):
    return ReviewService(db).stats(project_id)


@router.post("/candidates/{candidate_id}/decision", response_model=BulkDecisionResponse)
def decide(
    candidate_id: UUID,
    payload: DecisionCreate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """
    Confirm or reject one candidate.

    Raises:
        HTTPException 404: Candidate not found
    """
    result = ReviewService(db).decide(
        candidate_id, payload.decision, actor_id, payload.corrected_part_number, payload.reason
    )
    if result.failed and not result.succeeded and result.errors:
        detail = result.errors[0]["error"]
        if "not found" in detail:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
    return result.to_dict()


@router.post("/decisions/bulk", response_model=BulkDecisionResponse)
def decide_bulk(
    payload: BulkDecisionCreate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """
    Apply many decisions in one transaction.

    Per-row problems are reported in the result; a failed transaction
    reports zero applied.
    """
    requests = [
        DecisionRequest(item.candidate_id, item.decision, item.corrected_part_number, item.reason)
        for item in payload.decisions
    ]
    try:
        result = ReviewService(db).decide_bulk(payload.project_id, requests, actor_id)
    except ReviewError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return result.to_dict()


@router.post("/candidates/{candidate_id}/enrich", response_model=List[EnrichmentResponse])
def enrich_candidate(
    candidate_id: UUID,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """
    Ask the AI provider for catalog attributes of a candidate's store item.

    Raises:
        HTTPException 404: Candidate not found
        HTTPException 409: AI cost ceiling reached
    """
    try:
        return CatalogEnricher(db).enrich(candidate_id)
    except MatcherError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except BudgetGateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
