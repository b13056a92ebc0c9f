"""Review workflow for mined suggestions (approve / reject / list)."""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.base import utcnow
from models.project_match_rule import ProjectMatchRule, SuggestedRuleStatus, SuggestedRuleType
from .exceptions import RuleNotFoundError, InvalidTransitionError
from .rule_states import can_transition

logger = logging.getLogger(__name__)


class SuggestedRuleService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, project_id: UUID, rule_id: UUID) -> ProjectMatchRule:
        rule = self.db.get(ProjectMatchRule, rule_id)
        if rule is None or rule.project_id != project_id:
            raise RuleNotFoundError(f"Suggested rule {rule_id} not found")
        return rule

    def list_rules(
        self,
        project_id: UUID,
        status: Optional[SuggestedRuleStatus] = None,
        rule_type: Optional[SuggestedRuleType] = None,
    ) -> List[ProjectMatchRule]:
        stmt = select(ProjectMatchRule).where(ProjectMatchRule.project_id == project_id)
        if status is not None:
            stmt = stmt.where(ProjectMatchRule.status == status)
        if rule_type is not None:
            stmt = stmt.where(ProjectMatchRule.rule_type == rule_type)
        stmt = stmt.order_by(ProjectMatchRule.evidence_count.desc(), ProjectMatchRule.pattern_key)
        return list(self.db.execute(stmt).scalars().all())

    def approve(self, project_id: UUID, rule_id: UUID, actor_id: Optional[str] = None) -> ProjectMatchRule:
        return self._decide(project_id, rule_id, SuggestedRuleStatus.APPROVED, actor_id)

    def reject(self, project_id: UUID, rule_id: UUID, actor_id: Optional[str] = None) -> ProjectMatchRule:
        return self._decide(project_id, rule_id, SuggestedRuleStatus.REJECTED, actor_id)

    def _decide(
        self,
        project_id: UUID,
        rule_id: UUID,
        status: SuggestedRuleStatus,
        actor_id: Optional[str],
    ) -> ProjectMatchRule:
        rule = self.get(project_id, rule_id)
        if not can_transition(rule.status, status):
            raise InvalidTransitionError(rule.status.value, status.value)
        rule.status = status
        rule.approved_by = actor_id
        rule.approved_at = utcnow()
        self.db.commit()
        self.db.refresh(rule)
        logger.info(
            "Suggested rule decided",
            extra={"project_id": project_id, "rule_id": str(rule_id), "status": status.value},
        )
        return rule


def load_approved_rules(db: Session, project_id: UUID) -> List[ProjectMatchRule]:
    """APPROVED suggestions for a project; the only ones that affect scoring."""
    return list(
        db.execute(
            select(ProjectMatchRule).where(
                ProjectMatchRule.project_id == project_id,
                ProjectMatchRule.status == SuggestedRuleStatus.APPROVED,
            )
        ).scalars().all()
    )
