"""Deterministic matcher: canonical-key and interchange-bridge set joins.

Direct stage tiers (line codes compared after alias resolution):

    identical key, identical line code        1.00
    identical key, one line code missing      0.98
    identical key, differing line codes       0.95  (complex keys only)
    suffix containment, supplier ends w/ store 0.93
    suffix containment, store ends w/ supplier 0.90  (+0.02 on equal line code)

Interchange hop: store key -> Interchange.theirs -> ours -> supplier key,
scored as the direct tier minus INTERCHANGE_HOP_PENALTY, capped at 0.98 and
scaled by the bridge confidence. The penalty keeps every hop strictly below
every identical-key direct tier.

The stage reads everything first and writes once; a failed query raises
MatcherError before any candidate is inserted.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, literal, union_all, func, and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.interchange import Interchange
from models.match_candidate import MatchMethod, TargetType
from models.store_item import StoreItem
from models.supplier_item import SupplierItem
from normalization import AliasResolver, AliasCache
from rules.master_rule_matcher import BlockedPairs, load_blocked_pairs
from .candidate_writer import save_candidates
from .ports import CandidateProposal, MatcherError, MatcherStagePort, StageResult
from .queries import select_unmatched_ids, supplier_scope

logger = logging.getLogger(__name__)

CONFIDENCE_SAME_LINE = 1.0
CONFIDENCE_LINE_MISSING = 0.98
CONFIDENCE_LINE_DIFFERS = 0.95
CONFIDENCE_SUFFIX_SUPPLIER_CONTAINS = 0.93
CONFIDENCE_SUFFIX_STORE_CONTAINS = 0.90
SUFFIX_SAME_LINE_BONUS = 0.02
SUFFIX_CEILING = 0.95
INTERCHANGE_HOP_PENALTY = 0.10
INTERCHANGE_HOP_CEILING = 0.98
SUFFIX_MIN_KEY_LENGTH = 5

_DIGIT = re.compile(r"\d")


def is_complex_key(key: Optional[str]) -> bool:
    """Long keys containing digits are specific enough to ignore a line code mismatch."""
    return bool(key) and len(key) > 5 and bool(_DIGIT.search(key))


def direct_tier(line_match: Optional[bool]) -> float:
    """Confidence for an identical-key match given the line code comparison."""
    if line_match is True:
        return CONFIDENCE_SAME_LINE
    if line_match is None:
        return CONFIDENCE_LINE_MISSING
    return CONFIDENCE_LINE_DIFFERS


def hop_confidence(direct: float, bridge_confidence: float = 1.0) -> float:
    return round(min(direct - INTERCHANGE_HOP_PENALTY, INTERCHANGE_HOP_CEILING) * bridge_confidence, 4)


@dataclass
class _JoinRow:
    store_item_id: UUID
    store_canonical: str
    supplier_canonical: str
    store_key: str
    store_line_code: Optional[str]
    supplier_item_id: UUID
    supplier_part_number: str
    supplier_key: str
    supplier_line_code: Optional[str]
    matched_on: str
    bridge_line_code: Optional[str] = None
    bridge_confidence: float = 1.0
    bridge_source: Optional[str] = None


class DeterministicMatcher(MatcherStagePort):
    """Exact and interchange matching over one chunk of store items.

    Usage:
        matcher = DeterministicMatcher(db)
        result = matcher.run(project_id, store_item_ids)
        db.commit()
    """

    name = "exact"

    def __init__(self, db: Session, alias_cache: Optional[AliasCache] = None):
        self.db = db
        self.alias_cache = alias_cache

    def run(self, project_id: UUID, store_item_ids: Sequence[UUID], job_id: Optional[UUID] = None) -> StageResult:
        result = StageResult(stage=self.name)
        ids = select_unmatched_ids(self.db, project_id, store_item_ids)
        result.processed = len(ids)
        if not ids:
            return result

        resolver = AliasResolver(self.db, project_id, self.alias_cache)
        try:
            blocked = load_blocked_pairs(self.db, project_id)
            best: Dict[UUID, CandidateProposal] = {}

            self._collect(best, self._equality_rows(project_id, ids), resolver, blocked, result, self._score_equal)

            remaining = [i for i in ids if i not in best]
            if remaining:
                self._collect(best, self._suffix_rows(project_id, remaining), resolver, blocked, result, self._score_suffix)

            remaining = [i for i in ids if i not in best]
            if remaining:
                self._collect(best, self._interchange_rows(project_id, remaining), resolver, blocked, result, self._score_hop)
        except SQLAlchemyError as e:
            logger.error(
                "Deterministic join failed",
                extra={"project_id": project_id, "job_id": job_id, "chunk": len(ids)},
                exc_info=True,
            )
            raise MatcherError(f"Deterministic matching failed: {e}") from e

        created, skipped = save_candidates(self.db, project_id, best.values())
        result.candidates_created = created
        result.duplicates_skipped = skipped
        logger.info(
            "Deterministic stage finished",
            extra={"project_id": project_id, "job_id": job_id, **result.to_dict()},
        )
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _equality_select(self, project_id: UUID, ids: List[UUID], store_col, supplier_col, label: str):
        return (
            select(
                StoreItem.id.label("store_item_id"),
                StoreItem.canonical_part_number.label("store_canonical"),
                SupplierItem.canonical_part_number.label("supplier_canonical"),
                store_col.label("store_key"),
                StoreItem.line_code.label("store_line_code"),
                SupplierItem.id.label("supplier_item_id"),
                SupplierItem.part_number.label("supplier_part_number"),
                supplier_col.label("supplier_key"),
                SupplierItem.line_code.label("supplier_line_code"),
                literal(label).label("matched_on"),
            )
            .select_from(StoreItem)
            .join(SupplierItem, supplier_col == store_col)
            .where(
                StoreItem.id.in_(ids),
                store_col.is_not(None),
                store_col != "",
                supplier_scope(project_id),
            )
        )

    def _equality_rows(self, project_id: UUID, ids: List[UUID]) -> List[_JoinRow]:
        stmt = union_all(
            self._equality_select(project_id, ids, StoreItem.canonical_part_number,
                                  SupplierItem.canonical_part_number, "canonical"),
            self._equality_select(project_id, ids, StoreItem.canonical_part_number,
                                  SupplierItem.manufacturer_part_canonical, "supplier_mfr"),
            self._equality_select(project_id, ids, StoreItem.manufacturer_part_canonical,
                                  SupplierItem.canonical_part_number, "store_mfr"),
            self._equality_select(project_id, ids, StoreItem.manufacturer_part_canonical,
                                  SupplierItem.manufacturer_part_canonical, "both_mfr"),
        )
        return [_JoinRow(**row._mapping) for row in self.db.execute(stmt)]

    def _suffix_rows(self, project_id: UUID, ids: List[UUID]) -> List[_JoinRow]:
        store_key = StoreItem.canonical_part_number
        supplier_key = SupplierItem.canonical_part_number

        def suffix_select(longer, shorter, label):
            return (
                select(
                    StoreItem.id.label("store_item_id"),
                    StoreItem.canonical_part_number.label("store_canonical"),
                    SupplierItem.canonical_part_number.label("supplier_canonical"),
                    store_key.label("store_key"),
                    StoreItem.line_code.label("store_line_code"),
                    SupplierItem.id.label("supplier_item_id"),
                    SupplierItem.part_number.label("supplier_part_number"),
                    supplier_key.label("supplier_key"),
                    SupplierItem.line_code.label("supplier_line_code"),
                    literal(label).label("matched_on"),
                )
                .select_from(StoreItem)
                .join(SupplierItem, and_(longer.endswith(shorter), longer != shorter))
                .where(
                    StoreItem.id.in_(ids),
                    func.length(shorter) >= SUFFIX_MIN_KEY_LENGTH,
                    supplier_scope(project_id),
                )
            )

        stmt = union_all(
            suffix_select(supplier_key, store_key, "suffix_supplier_contains"),
            suffix_select(store_key, supplier_key, "suffix_store_contains"),
        )
        return [_JoinRow(**row._mapping) for row in self.db.execute(stmt)]

    def _interchange_rows(self, project_id: UUID, ids: List[UUID]) -> List[_JoinRow]:
        stmt = (
            select(
                StoreItem.id.label("store_item_id"),
                StoreItem.canonical_part_number.label("store_canonical"),
                SupplierItem.canonical_part_number.label("supplier_canonical"),
                StoreItem.canonical_part_number.label("store_key"),
                StoreItem.line_code.label("store_line_code"),
                SupplierItem.id.label("supplier_item_id"),
                SupplierItem.part_number.label("supplier_part_number"),
                SupplierItem.canonical_part_number.label("supplier_key"),
                SupplierItem.line_code.label("supplier_line_code"),
                literal("interchange").label("matched_on"),
                Interchange.ours_line_code.label("bridge_line_code"),
                Interchange.confidence.label("bridge_confidence"),
                Interchange.source.label("bridge_source"),
            )
            .select_from(StoreItem)
            .join(Interchange, Interchange.theirs_canonical == StoreItem.canonical_part_number)
            .join(
                SupplierItem,
                or_(
                    SupplierItem.canonical_part_number == Interchange.ours_canonical,
                    SupplierItem.manufacturer_part_canonical == Interchange.ours_canonical,
                ),
            )
            .where(
                StoreItem.id.in_(ids),
                or_(Interchange.project_id == project_id, Interchange.project_id.is_(None)),
                supplier_scope(project_id),
            )
        )
        return [_JoinRow(**row._mapping) for row in self.db.execute(stmt)]

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def _collect(self, best, rows, resolver, blocked: BlockedPairs, result: StageResult, scorer) -> None:
        for row in rows:
            if blocked.blocks(row.store_canonical, row.supplier_canonical, row.store_line_code, row.supplier_line_code):
                result.rejected_pairs += 1
                continue
            scored = scorer(row, resolver)
            if scored is None:
                continue
            confidence, method, features = scored
            proposal = CandidateProposal(
                store_item_id=row.store_item_id,
                target_type=TargetType.SUPPLIER,
                target_id=str(row.supplier_item_id),
                target_part_number=row.supplier_part_number,
                method=method,
                confidence=confidence,
                matched_on=row.matched_on,
                features=features,
            )
            current = best.get(row.store_item_id)
            if current is None or (proposal.confidence, current.target_id) > (current.confidence, proposal.target_id):
                best[row.store_item_id] = proposal

    def _score_equal(self, row: _JoinRow, resolver: AliasResolver):
        line_match = resolver.same_brand(row.store_line_code, row.supplier_line_code)
        if line_match is False and not is_complex_key(row.store_key):
            return None
        if row.matched_on == "both_mfr" and line_match is not True:
            # Bare manufacturer fragments collide across brands; require the same line
            return None
        confidence = direct_tier(line_match)
        method = MatchMethod.EXACT_NORMALIZED if row.matched_on == "canonical" else MatchMethod.LINE_PART
        return confidence, method, {
            "tier": "direct",
            "store_key": row.store_key,
            "supplier_key": row.supplier_key,
            "line_code_match": line_match,
        }

    def _score_suffix(self, row: _JoinRow, resolver: AliasResolver):
        line_match = resolver.same_brand(row.store_line_code, row.supplier_line_code)
        if row.matched_on == "suffix_supplier_contains":
            confidence = CONFIDENCE_SUFFIX_SUPPLIER_CONTAINS
        else:
            confidence = CONFIDENCE_SUFFIX_STORE_CONTAINS
        if line_match is True:
            confidence = min(confidence + SUFFIX_SAME_LINE_BONUS, SUFFIX_CEILING)
        return confidence, MatchMethod.EXACT_NORMALIZED, {
            "tier": "suffix",
            "store_key": row.store_key,
            "supplier_key": row.supplier_key,
            "line_code_match": line_match,
        }

    def _score_hop(self, row: _JoinRow, resolver: AliasResolver):
        line_match = resolver.same_brand(row.bridge_line_code, row.supplier_line_code)
        direct = direct_tier(line_match)
        confidence = hop_confidence(direct, float(row.bridge_confidence or 1.0))
        return confidence, MatchMethod.INTERCHANGE, {
            "tier": "interchange",
            "store_key": row.store_key,
            "supplier_key": row.supplier_key,
            "direct_confidence": direct,
            "hop_penalty": INTERCHANGE_HOP_PENALTY,
            "bridge_confidence": float(row.bridge_confidence or 1.0),
            "bridge_source": row.bridge_source,
        }
