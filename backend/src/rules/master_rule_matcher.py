"""Stage 0: apply learned master rules before any scoring.

POSITIVE_MAP rules produce CONFIRMED MASTER_RULE candidates for unmatched
store items whose canonical key (and line codes, when the rule has them)
match the rule. NEGATIVE_BLOCK rules are exposed as a BlockedPairs lookup
that every later stage filters against, and PENDING candidates of a blocked
pairing are transitioned to REJECTED. A candidate a human has already
decided is never touched by rule application.
"""

import logging
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from sqlalchemy import select, update, or_, and_
from sqlalchemy.orm import Session

from models.base import utcnow
from models.master_rule import MasterRule, MasterRuleType, MasterRuleState, RuleScope
from models.match_candidate import MatchCandidate, MatchMethod, MatchStatus, ReviewSource, TargetType
from models.store_item import StoreItem
from models.supplier_item import SupplierItem
from matching.candidate_writer import save_candidates
from matching.ports import CandidateProposal, MatcherStagePort, StageResult
from matching.queries import select_unmatched_ids, supplier_scope
from normalization import normalize_line_code

logger = logging.getLogger(__name__)


def rules_in_scope(project_id: UUID):
    """Filter for enabled rules visible to a project (global plus its own)."""
    return and_(
        MasterRule.state == MasterRuleState.ENABLED,
        or_(
            MasterRule.scope == RuleScope.GLOBAL,
            and_(MasterRule.scope == RuleScope.PROJECT, MasterRule.project_id == project_id),
        ),
    )


def _line_code_agrees(rule_code: Optional[str], item_code: Optional[str]) -> bool:
    return not rule_code or normalize_line_code(rule_code) == normalize_line_code(item_code)


class BlockedPairs:
    """NEGATIVE_BLOCK rules indexed by canonical (store key, supplier key).

    A rule blocks a pairing when both keys match and each line code the rule
    carries agrees with the corresponding item's line code. A rule without
    line codes blocks the key pair for every brand.
    """

    def __init__(self, rules: Iterable[Tuple[str, str, Optional[str], Optional[str]]] = ()):
        self._by_pair: Dict[Tuple[str, str], List[Tuple[Optional[str], Optional[str]]]] = defaultdict(list)
        for store_key, supplier_key, line_code, supplier_line_code in rules:
            self._by_pair[(store_key, supplier_key)].append((line_code, supplier_line_code))

    def __bool__(self) -> bool:
        return bool(self._by_pair)

    def __len__(self) -> int:
        return sum(len(codes) for codes in self._by_pair.values())

    @property
    def store_keys(self) -> Set[str]:
        return {store_key for store_key, _ in self._by_pair}

    def blocks(
        self,
        store_key: str,
        supplier_key: Optional[str],
        store_line_code: Optional[str] = None,
        supplier_line_code: Optional[str] = None,
    ) -> bool:
        for line_code, rule_supplier_code in self._by_pair.get((store_key, supplier_key), ()):
            if _line_code_agrees(line_code, store_line_code) and _line_code_agrees(rule_supplier_code, supplier_line_code):
                return True
        return False


def load_blocked_pairs(db: Session, project_id: UUID) -> BlockedPairs:
    """Every NEGATIVE_BLOCK rule visible to a project."""
    rows = db.execute(
        select(
            MasterRule.store_part_key,
            MasterRule.supplier_part_key,
            MasterRule.line_code,
            MasterRule.supplier_line_code,
        ).where(
            MasterRule.rule_type == MasterRuleType.NEGATIVE_BLOCK,
            rules_in_scope(project_id),
        )
    ).all()
    return BlockedPairs(tuple(row) for row in rows)


def reject_blocked_candidates(
    db: Session,
    project_id: Optional[UUID] = None,
    blocked: Optional[BlockedPairs] = None,
) -> int:
    """Transition PENDING SUPPLIER candidates of blocked pairings to REJECTED.

    CONFIRMED candidates are human or rule decisions and are left alone.

    Args:
        db: Database session
        project_id: Restrict to one project (None scans every project, for global rules)
        blocked: Pairings to enforce; defaults to every block rule visible to project_id

    Returns:
        Number of candidates rejected. Does not commit.
    """
    if blocked is None:
        if project_id is None:
            raise ValueError("blocked pairs are required when no project is given")
        blocked = load_blocked_pairs(db, project_id)
    if not blocked:
        return 0

    stmt = (
        select(MatchCandidate.id, StoreItem.canonical_part_number, StoreItem.line_code, MatchCandidate.target_id)
        .select_from(MatchCandidate)
        .join(StoreItem, StoreItem.id == MatchCandidate.store_item_id)
        .where(
            MatchCandidate.target_type == TargetType.SUPPLIER,
            MatchCandidate.status == MatchStatus.PENDING,
            StoreItem.canonical_part_number.in_(blocked.store_keys),
        )
    )
    if project_id is not None:
        stmt = stmt.where(MatchCandidate.project_id == project_id)
    live = db.execute(stmt).all()
    if not live:
        return 0

    supplier_ids = {UUID(target_id) for _, _, _, target_id in live}
    suppliers = {
        str(sid): (key, line_code)
        for sid, key, line_code in db.execute(
            select(SupplierItem.id, SupplierItem.canonical_part_number, SupplierItem.line_code)
            .where(SupplierItem.id.in_(supplier_ids))
        )
    }
    ids = []
    for cid, store_key, store_line_code, target_id in live:
        supplier_key, supplier_line_code = suppliers.get(target_id, (None, None))
        if blocked.blocks(store_key, supplier_key, store_line_code, supplier_line_code):
            ids.append(cid)
    if not ids:
        return 0

    db.execute(
        update(MatchCandidate)
        .where(MatchCandidate.id.in_(ids), MatchCandidate.status == MatchStatus.PENDING)
        .values(status=MatchStatus.REJECTED, review_source=ReviewSource.RULE, decided_at=utcnow())
    )
    logger.info("Blocked candidates rejected", extra={"project_id": project_id, "count": len(ids)})
    return len(ids)


class MasterRuleApplier(MatcherStagePort):
    """Apply enabled POSITIVE_MAP rules to a chunk of unmatched store items."""

    name = "master_rules"

    def __init__(self, db: Session):
        self.db = db

    def run(self, project_id: UUID, store_item_ids: Sequence[UUID], job_id: Optional[UUID] = None) -> StageResult:
        result = StageResult(stage=self.name)
        ids = select_unmatched_ids(self.db, project_id, store_item_ids)
        result.processed = len(ids)
        if not ids:
            return result

        rules = self.db.execute(
            select(MasterRule).where(
                MasterRule.rule_type == MasterRuleType.POSITIVE_MAP,
                rules_in_scope(project_id),
            )
        ).scalars().all()
        if not rules:
            return result

        rules_by_store_key: Dict[str, List[MasterRule]] = defaultdict(list)
        for rule in rules:
            rules_by_store_key[rule.store_part_key].append(rule)

        store_rows = self.db.execute(
            select(StoreItem.id, StoreItem.canonical_part_number, StoreItem.line_code).where(
                StoreItem.id.in_(ids),
                StoreItem.canonical_part_number.in_(list(rules_by_store_key)),
            )
        ).all()
        if not store_rows:
            return result

        supplier_keys = {r.supplier_part_key for rule_list in rules_by_store_key.values() for r in rule_list}
        suppliers_by_key: Dict[str, List[Tuple[UUID, str, Optional[str]]]] = defaultdict(list)
        for supplier_id, part_number, key, supplier_line_code in self.db.execute(
            select(SupplierItem.id, SupplierItem.part_number, SupplierItem.canonical_part_number, SupplierItem.line_code)
            .where(SupplierItem.canonical_part_number.in_(supplier_keys), supplier_scope(project_id))
            .order_by(SupplierItem.id)
        ):
            suppliers_by_key[key].append((supplier_id, part_number, supplier_line_code))

        proposals: List[CandidateProposal] = []
        applied: Counter = Counter()
        for store_id, store_key, line_code in store_rows:
            for rule in rules_by_store_key[store_key]:
                if not _line_code_agrees(rule.line_code, line_code):
                    continue
                targets = [
                    (supplier_id, supplier_part)
                    for supplier_id, supplier_part, supplier_line_code in suppliers_by_key.get(rule.supplier_part_key, ())
                    if _line_code_agrees(rule.supplier_line_code, supplier_line_code)
                ]
                if not targets:
                    continue
                supplier_id, supplier_part = targets[0]
                proposals.append(CandidateProposal(
                    store_item_id=store_id,
                    target_type=TargetType.SUPPLIER,
                    target_id=str(supplier_id),
                    target_part_number=supplier_part,
                    method=MatchMethod.MASTER_RULE,
                    confidence=float(rule.confidence),
                    status=MatchStatus.CONFIRMED,
                    review_source=ReviewSource.RULE,
                    matched_on="master_rule",
                    features={"rule_id": str(rule.id), "rule_type": rule.rule_type.value, "scope": rule.scope.value},
                ))
                applied[rule.id] += 1
                break

        created, skipped = save_candidates(self.db, project_id, proposals)
        result.candidates_created = created
        result.duplicates_skipped = skipped

        now = utcnow()
        for rule_id, count in applied.items():
            self.db.execute(
                update(MasterRule)
                .where(MasterRule.id == rule_id)
                .values(applied_count=MasterRule.applied_count + count, last_applied_at=now)
            )

        logger.info(
            "Master rules applied",
            extra={"project_id": project_id, "job_id": job_id, "rules_applied": len(applied), **result.to_dict()},
        )
        return result

    def apply(self, project_id: UUID, store_item_ids: Sequence[UUID]) -> StageResult:
        """Apply rules outside a job (e.g. right after a rule is created)."""
        return self.run(project_id, store_item_ids)


def enforce_block_rule(db: Session, rule: MasterRule) -> int:
    """Reject PENDING candidates that a freshly learned NEGATIVE_BLOCK rule forbids."""
    if rule.rule_type != MasterRuleType.NEGATIVE_BLOCK or not rule.enabled:
        return 0
    project_id = rule.project_id if rule.scope == RuleScope.PROJECT else None
    blocked = BlockedPairs([(rule.store_part_key, rule.supplier_part_key, rule.line_code, rule.supplier_line_code)])
    return reject_blocked_candidates(db, project_id, blocked)
