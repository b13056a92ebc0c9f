"""Human review of match candidates.

Decisions update candidate status and write accepted/rejected history rows
in one transaction, so the two are never observed out of sync. Rule learning
is dispatched only after that transaction commits and can never undo it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.base import utcnow
from models.match_candidate import MatchCandidate, MatchMethod, MatchStatus, ReviewSource, TargetType
from models.match_history import AcceptedMatchHistory, RejectedMatchHistory
from models.store_item import StoreItem
from models.supplier_item import SupplierItem
from observability.metrics import review_decisions_total
from rules.events import DecisionsRecorded, Dispatcher, dispatch_decisions_recorded
from rules.learner import Decision, DecisionType
from .exceptions import ReviewError

logger = logging.getLogger(__name__)

MAX_REPORTED_ERRORS = 100
MAX_BULK_DECISIONS = 5000


@dataclass
class DecisionRequest:
    """One decision within a (bulk) review request."""
    candidate_id: UUID
    decision: DecisionType
    corrected_part_number: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class BulkDecisionResult:
    """Outcome of a review request. errors is capped at MAX_REPORTED_ERRORS."""
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def add_error(self, candidate_id: Optional[UUID], message: str) -> None:
        self.failed += 1
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append({
                "candidate_id": str(candidate_id) if candidate_id else None,
                "error": message,
            })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": self.errors,
        }


class ReviewService:
    """Apply human decisions to match candidates.

    Args:
        db: Database session (the service commits)
        dispatcher: Where recorded decisions go for rule learning
            (defaults to the Celery task, or inline when RULE_LEARNING_ASYNC is off)
    """

    def __init__(self, db: Session, dispatcher: Optional[Dispatcher] = None):
        self.db = db
        self.dispatcher = dispatcher

    def decide(
        self,
        candidate_id: UUID,
        decision: DecisionType,
        actor_id: Optional[str],
        corrected_part_number: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> BulkDecisionResult:
        """Record a single decision made in the review UI."""
        candidate = self.db.get(MatchCandidate, candidate_id)
        if candidate is None:
            result = BulkDecisionResult(total=1)
            result.add_error(candidate_id, "Match candidate not found")
            return result

        request = DecisionRequest(candidate_id, DecisionType(decision), corrected_part_number, reason)
        return self._apply(candidate.project_id, [request], actor_id, ReviewSource.UI)

    def decide_bulk(
        self,
        project_id: UUID,
        requests: Sequence[DecisionRequest],
        actor_id: Optional[str],
    ) -> BulkDecisionResult:
        """Record many decisions in one transaction.

        Candidates that are missing or belong to another project are skipped
        and counted. A database failure rolls back the whole batch and
        reports zero applied.

        Raises:
            ReviewError: Batch larger than MAX_BULK_DECISIONS
        """
        if len(requests) > MAX_BULK_DECISIONS:
            raise ReviewError(f"At most {MAX_BULK_DECISIONS} decisions per request, got {len(requests)}")
        return self._apply(project_id, list(requests), actor_id, ReviewSource.BULK)

    def _apply(
        self,
        project_id: UUID,
        requests: List[DecisionRequest],
        actor_id: Optional[str],
        source: ReviewSource,
    ) -> BulkDecisionResult:
        result = BulkDecisionResult(total=len(requests))
        recorded: List[Decision] = []

        try:
            for request in requests:
                candidate = self.db.get(MatchCandidate, request.candidate_id)
                if candidate is None:
                    result.add_error(request.candidate_id, "Match candidate not found")
                    continue
                if candidate.project_id != project_id:
                    result.add_error(request.candidate_id, "Match candidate belongs to another project")
                    continue

                decision = self._record(candidate, request, actor_id, source)
                if decision is not None:
                    recorded.append(decision)
                result.succeeded += 1

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Review batch rolled back: {e}",
                extra={"project_id": project_id, "decisions": len(requests)},
            )
            failed = BulkDecisionResult(total=len(requests))
            failed.failed = len(requests)
            failed.errors = [{"candidate_id": None, "error": f"Transaction failed: {type(e).__name__}"}]
            return failed

        for decision in recorded:
            review_decisions_total.labels(decision=decision.decision.value, source=source.value).inc()
        logger.info(
            "Review decisions recorded",
            extra={"project_id": project_id, "succeeded": result.succeeded, "failed": result.failed},
        )

        dispatch_decisions_recorded(DecisionsRecorded(str(project_id), recorded), self.dispatcher)
        return result

    def _record(
        self,
        candidate: MatchCandidate,
        request: DecisionRequest,
        actor_id: Optional[str],
        source: ReviewSource,
    ) -> Optional[Decision]:
        """Update one candidate and write its history row. Returns the decision to learn from."""
        target_status = MatchStatus.CONFIRMED if request.decision == DecisionType.CONFIRM else MatchStatus.REJECTED
        corrected = (request.corrected_part_number or "").strip() or None
        if candidate.status == target_status and corrected in (None, candidate.corrected_supplier_part_number):
            return None

        store_item = self.db.get(StoreItem, candidate.store_item_id)
        supplier_line_code = None
        if candidate.target_type == TargetType.SUPPLIER:
            supplier = self.db.get(SupplierItem, UUID(candidate.target_id))
            if supplier is not None:
                supplier_line_code = supplier.line_code

        now = utcnow()
        candidate.status = target_status
        candidate.review_source = source
        candidate.decided_by = actor_id
        candidate.decided_at = now
        if corrected is not None and target_status == MatchStatus.CONFIRMED:
            candidate.corrected_supplier_part_number = corrected

        history_values = dict(
            project_id=candidate.project_id,
            match_candidate_id=candidate.id,
            store_part_number=store_item.part_number,
            store_line_code=store_item.line_code,
            supplier_part_number=corrected or candidate.target_part_number,
            supplier_line_code=supplier_line_code,
            method=candidate.method.value,
            confidence=candidate.confidence,
            decided_by=actor_id,
            decided_at=now,
        )
        if target_status == MatchStatus.CONFIRMED:
            self.db.add(AcceptedMatchHistory(**history_values))
        else:
            self.db.add(RejectedMatchHistory(reason=request.reason, **history_values))
        self.db.flush()

        return Decision(
            project_id=str(candidate.project_id),
            match_candidate_id=str(candidate.id),
            decision=request.decision,
            store_part_number=store_item.part_number,
            supplier_part_number=candidate.target_part_number,
            line_code=store_item.line_code,
            supplier_line_code=supplier_line_code,
            corrected_supplier_part_number=corrected,
            actor_id=actor_id,
        )

    # ---- read side ----

    def list_candidates(
        self,
        project_id: UUID,
        status: Optional[MatchStatus] = None,
        method: Optional[MatchMethod] = None,
        min_confidence: Optional[float] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[MatchCandidate]:
        stmt = select(MatchCandidate).where(MatchCandidate.project_id == project_id)
        if status is not None:
            stmt = stmt.where(MatchCandidate.status == status)
        if method is not None:
            stmt = stmt.where(MatchCandidate.method == method)
        if min_confidence is not None:
            stmt = stmt.where(MatchCandidate.confidence >= min_confidence)
        stmt = stmt.order_by(MatchCandidate.confidence.desc(), MatchCandidate.id).limit(limit).offset(offset)
        return list(self.db.execute(stmt).scalars().all())

    def stats(self, project_id: UUID) -> Dict[str, Any]:
        """Candidate counts by method and status, plus store item coverage."""
        rows = self.db.execute(
            select(MatchCandidate.method, MatchCandidate.status, func.count(MatchCandidate.id))
            .where(MatchCandidate.project_id == project_id)
            .group_by(MatchCandidate.method, MatchCandidate.status)
        ).all()

        by_method: Dict[str, Dict[str, int]] = {}
        by_status: Dict[str, int] = {s.value: 0 for s in MatchStatus}
        total = 0
        for method, status, count in rows:
            by_method.setdefault(method.value, {})[status.value] = count
            by_status[status.value] += count
            total += count

        store_items = self.db.execute(
            select(func.count(StoreItem.id)).where(StoreItem.project_id == project_id)
        ).scalar_one()
        confirmed_items = self.db.execute(
            select(func.count(func.distinct(MatchCandidate.store_item_id))).where(
                and_(MatchCandidate.project_id == project_id, MatchCandidate.status == MatchStatus.CONFIRMED)
            )
        ).scalar_one()

        return {
            "total_candidates": total,
            "by_status": by_status,
            "by_method": by_method,
            "store_items": store_items,
            "confirmed_items": confirmed_items,
            "confirmed_rate": round(confirmed_items / store_items * 100, 2) if store_items else 0.0,
        }
