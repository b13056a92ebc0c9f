"""Master rule learning from human review decisions.

A CONFIRM decision becomes a POSITIVE_MAP rule (using the corrected supplier
part number when the reviewer supplied one); a REJECT decision becomes a
NEGATIVE_BLOCK rule. Rules are deduplicated on their natural key among the
ENABLED rules the decision's project can see, so replaying the same
decisions creates nothing new. A partial unique index on the key backs this
up when two learners race.

Learning always runs after the decision transaction has committed. A failure
here is logged and counted; it never undoes a recorded decision.
"""

import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from models.master_rule import MasterRule, MasterRuleType, MasterRuleState, RuleScope, master_rule_natural_key
from normalization import normalize_part_number, normalize_line_code
from .exceptions import DuplicateRuleError, RuleNotFoundError, InvalidTransitionError
from .master_rule_matcher import enforce_block_rule
from .rule_states import can_transition

logger = logging.getLogger(__name__)


class DecisionType(str, Enum):
    CONFIRM = "CONFIRM"
    REJECT = "REJECT"


@dataclass
class Decision:
    """A recorded human decision, as handed to the learner.

    Carries plain values only so it can cross the Celery boundary as JSON.
    """
    project_id: str
    match_candidate_id: str
    decision: DecisionType
    store_part_number: str
    supplier_part_number: Optional[str]
    line_code: Optional[str] = None
    supplier_line_code: Optional[str] = None
    corrected_supplier_part_number: Optional[str] = None
    actor_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["decision"] = self.decision.value
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Decision":
        data = dict(payload)
        data["decision"] = DecisionType(data["decision"])
        return cls(**data)


class MasterRuleLearner:
    """Create and manage master rules.

    Args:
        db: Database session; the learner commits its own work
        scope: Scope for newly learned rules (defaults to MASTER_RULE_DEFAULT_SCOPE)
    """

    def __init__(self, db: Session, scope: Optional[RuleScope] = None):
        self.db = db
        self.scope = scope or RuleScope(get_settings().MASTER_RULE_DEFAULT_SCOPE)

    def learn_from_decision(self, decision: Decision) -> Optional[MasterRule]:
        """Create the rule a decision implies.

        Does not commit.

        Returns:
            The new rule, or None when the decision yields no rule (missing
            supplier part, or an equivalent enabled rule already exists)
        """
        supplier_line_code = decision.supplier_line_code
        if decision.decision == DecisionType.CONFIRM:
            rule_type = MasterRuleType.POSITIVE_MAP
            supplier_part = decision.corrected_supplier_part_number or decision.supplier_part_number
            if decision.corrected_supplier_part_number:
                # The corrected part is not the proposed supplier item
                supplier_line_code = None
        else:
            rule_type = MasterRuleType.NEGATIVE_BLOCK
            supplier_part = decision.supplier_part_number

        store_key = normalize_part_number(decision.store_part_number)
        supplier_key = normalize_part_number(supplier_part)
        if not store_key or not supplier_key:
            logger.info(
                "Decision has no usable part keys, no rule learned",
                extra={"candidate_id": decision.match_candidate_id},
            )
            return None

        project_id = UUID(str(decision.project_id))
        line_code = normalize_line_code(decision.line_code) or None
        supplier_line_code = normalize_line_code(supplier_line_code) or None
        existing = self._find_visible(
            project_id, rule_type, store_key, supplier_key, line_code, supplier_line_code
        )
        if existing is not None:
            return None

        rule = MasterRule(
            rule_type=rule_type,
            scope=self.scope,
            project_id=project_id,
            store_part_number=decision.store_part_number,
            store_part_key=store_key,
            supplier_part_number=supplier_part,
            supplier_part_key=supplier_key,
            line_code=line_code,
            supplier_line_code=supplier_line_code,
            natural_key=master_rule_natural_key(
                rule_type, store_key, supplier_key, line_code, supplier_line_code, self.scope, project_id
            ),
            confidence=1.0,
            state=MasterRuleState.ENABLED,
            created_by=decision.actor_id,
            created_from_candidate_id=UUID(str(decision.match_candidate_id)),
        )
        self.db.add(rule)
        self.db.flush()

        if rule_type == MasterRuleType.NEGATIVE_BLOCK:
            enforce_block_rule(self.db, rule)

        logger.info(
            "Master rule learned",
            extra={
                "project_id": decision.project_id,
                "candidate_id": decision.match_candidate_id,
                "rule_id": str(rule.id),
                "rule_type": rule_type.value,
            },
        )
        return rule

    def learn_from_decisions(self, decisions: Iterable[Decision]) -> Dict[str, int]:
        """Learn from a batch, one savepoint per decision, then commit.

        Returns:
            {"created": n, "skipped": n, "errors": n}
        """
        stats = {"created": 0, "skipped": 0, "errors": 0}
        for decision in decisions:
            try:
                with self.db.begin_nested():
                    rule = self.learn_from_decision(decision)
            except IntegrityError:
                # A concurrent learner committed the same rule first
                stats["skipped"] += 1
                logger.info(
                    "Equivalent rule already enabled, decision skipped",
                    extra={"project_id": decision.project_id, "candidate_id": decision.match_candidate_id},
                )
                continue
            except (SQLAlchemyError, ValueError) as e:
                stats["errors"] += 1
                logger.error(
                    f"Rule learning failed for decision: {e}",
                    extra={"project_id": decision.project_id, "candidate_id": decision.match_candidate_id},
                )
                continue
            if rule is None:
                stats["skipped"] += 1
            else:
                stats["created"] += 1

        self.db.commit()
        logger.info(
            "Rule learning batch complete",
            extra={"rules_created": stats["created"], "rules_skipped": stats["skipped"], "errors": stats["errors"]},
        )
        return stats

    def _find_visible(
        self,
        project_id: UUID,
        rule_type: MasterRuleType,
        store_key: str,
        supplier_key: str,
        line_code: Optional[str],
        supplier_line_code: Optional[str],
    ) -> Optional[MasterRule]:
        """Enabled rule with the same natural key that the project already sees.

        That is the global rule or this project's own rule; another project's
        PROJECT rule does not count.
        """
        keys = [
            master_rule_natural_key(rule_type, store_key, supplier_key, line_code, supplier_line_code, scope, project_id)
            for scope in (RuleScope.GLOBAL, RuleScope.PROJECT)
        ]
        stmt = select(MasterRule).where(
            MasterRule.natural_key.in_(keys),
            MasterRule.state == MasterRuleState.ENABLED,
        )
        return self.db.execute(stmt.limit(1)).scalar_one_or_none()

    # Management

    def get_rule(self, rule_id: UUID) -> MasterRule:
        rule = self.db.get(MasterRule, rule_id)
        if rule is None:
            raise RuleNotFoundError(f"Master rule {rule_id} not found")
        return rule

    def set_state(self, rule_id: UUID, state: MasterRuleState) -> MasterRule:
        """Enable or disable a rule. Rules are never deleted.

        Raises:
            RuleNotFoundError: Unknown rule id
            InvalidTransitionError: Rule is already in the requested state
            DuplicateRuleError: Enabling would duplicate another enabled rule
        """
        rule = self.get_rule(rule_id)
        if not can_transition(rule.state, state):
            raise InvalidTransitionError(rule.state.value, state.value)
        rule.state = state
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateRuleError(f"An equivalent rule to {rule_id} is already enabled")
        if state == MasterRuleState.ENABLED and rule.rule_type == MasterRuleType.NEGATIVE_BLOCK:
            enforce_block_rule(self.db, rule)
        self.db.commit()
        self.db.refresh(rule)
        logger.info("Master rule state changed", extra={"rule_id": str(rule.id), "state": state.value})
        return rule

    def enable_rule(self, rule_id: UUID) -> MasterRule:
        return self.set_state(rule_id, MasterRuleState.ENABLED)

    def disable_rule(self, rule_id: UUID) -> MasterRule:
        return self.set_state(rule_id, MasterRuleState.DISABLED)

    def list_rules(
        self,
        project_id: Optional[UUID] = None,
        rule_type: Optional[MasterRuleType] = None,
        state: Optional[MasterRuleState] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[MasterRule]:
        """List rules, newest first. project_id limits to rules visible to that project."""
        stmt = select(MasterRule)
        if project_id is not None:
            stmt = stmt.where(
                (MasterRule.scope == RuleScope.GLOBAL) | (MasterRule.project_id == project_id)
            )
        if rule_type is not None:
            stmt = stmt.where(MasterRule.rule_type == rule_type)
        if state is not None:
            stmt = stmt.where(MasterRule.state == state)
        stmt = stmt.order_by(MasterRule.created_at.desc(), MasterRule.id).limit(limit).offset(offset)
        return list(self.db.execute(stmt).scalars().all())
