"""Fuzzy matcher: composite scoring over a bounded prefix shortlist.

For each unmatched store item the shortlist holds at most
FUZZY_SHORTLIST_SIZE supplier items whose canonical or manufacturer key
starts with the first FUZZY_PREFIX_LENGTH characters of the store key.
Items whose leading characters are garbled never reach the shortlist; that
recall ceiling is accepted to keep cost bounded on large catalogs.

Composite score:

    0.4 * part similarity (Jaro-Winkler)
  + 0.3 * description token Jaccard
  + 0.2 * manufacturer part similarity (when both sides have one)
  + 0.1 * cost sanity
  + approved rule boosts
  clamped to [0, 1], then capped by the collision guardrail.
"""

import logging
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from sqlalchemy import select, func, or_, union_all
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from models.interchange import Interchange
from models.match_candidate import MatchMethod, TargetType
from models.project import Project
from models.project_match_rule import SuggestedRuleType
from models.store_item import StoreItem
from models.supplier_item import SupplierItem
from normalization import AliasCache, AliasResolver, strip_separators
from rules.master_rule_matcher import load_blocked_pairs
from rules.suggested_rules import load_approved_rules
from .candidate_writer import save_candidates
from .guardrails import apply_collision_cap, hard_reject_reason
from .ports import CandidateProposal, MatcherError, MatcherStagePort, StageResult
from .queries import select_unmatched_ids, supplier_scope
from .similarity import cost_sanity, description_similarity, part_similarity

logger = logging.getLogger(__name__)

WEIGHT_PART = 0.4
WEIGHT_DESCRIPTION = 0.3
WEIGHT_MANUFACTURER_PART = 0.2
WEIGHT_COST = 0.1
PUNCTUATION_EQUIVALENCE_BOOST = 0.1


class FuzzyMatcher(MatcherStagePort):
    """Heuristic matching with hard rejects and collision guardrails.

    Usage:
        matcher = FuzzyMatcher(db)
        result = matcher.run(project_id, store_item_ids)
        db.commit()
    """

    name = "fuzzy"

    def __init__(
        self,
        db: Session,
        alias_cache: Optional[AliasCache] = None,
        shortlist_size: Optional[int] = None,
        prefix_length: Optional[int] = None,
        min_confidence: Optional[float] = None,
    ):
        settings = get_settings()
        self.db = db
        self.alias_cache = alias_cache
        self.shortlist_size = shortlist_size or settings.FUZZY_SHORTLIST_SIZE
        self.prefix_length = prefix_length or settings.FUZZY_PREFIX_LENGTH
        self.min_confidence = settings.FUZZY_MIN_CONFIDENCE if min_confidence is None else min_confidence

    def run(self, project_id: UUID, store_item_ids: Sequence[UUID], job_id: Optional[UUID] = None) -> StageResult:
        result = StageResult(stage=self.name)
        ids = select_unmatched_ids(self.db, project_id, store_item_ids)
        result.processed = len(ids)
        if not ids:
            return result

        project = self.db.get(Project, project_id)
        if project is None:
            raise MatcherError(f"Project {project_id} not found")

        resolver = AliasResolver(self.db, project_id, self.alias_cache)
        try:
            blocked = load_blocked_pairs(self.db, project_id)
            punctuation_rules, line_mappings = self._approved_rules(project_id, resolver)
            store_items = self.db.execute(
                select(StoreItem).where(StoreItem.id.in_(ids)).order_by(StoreItem.id)
            ).scalars().all()
            shortlists = {item.id: self._shortlist(project_id, item) for item in store_items}

            collision_keys = set()
            for item in store_items:
                for supplier in shortlists[item.id]:
                    key = self._collision_key(item, supplier)
                    if key:
                        collision_keys.add(key)
            brand_counts = self._brand_counts(project_id, collision_keys)
            bridges = self._interchange_bridges(project_id, {item.canonical_part_number for item in store_items})
        except SQLAlchemyError as e:
            logger.error(
                "Fuzzy shortlist query failed",
                extra={"project_id": project_id, "job_id": job_id, "chunk": len(ids)},
                exc_info=True,
            )
            raise MatcherError(f"Fuzzy matching failed: {e}") from e

        proposals: List[CandidateProposal] = []
        for item in store_items:
            for supplier in shortlists[item.id]:
                if blocked.blocks(item.canonical_part_number, supplier.canonical_part_number, item.line_code, supplier.line_code):
                    result.rejected_pairs += 1
                    continue
                proposal = self._score_pair(
                    project, item, supplier, resolver, punctuation_rules, line_mappings, brand_counts, bridges, result
                )
                if proposal is not None:
                    proposals.append(proposal)

        created, skipped = save_candidates(self.db, project_id, proposals)
        result.candidates_created = created
        result.duplicates_skipped = skipped
        logger.info(
            "Fuzzy stage finished",
            extra={"project_id": project_id, "job_id": job_id, **result.to_dict()},
        )
        return result

    def _score_pair(
        self,
        project: Project,
        item: StoreItem,
        supplier: SupplierItem,
        resolver: AliasResolver,
        punctuation_rules: List[str],
        line_mappings: Dict[str, str],
        brand_counts: Dict[str, int],
        bridges: Set[FrozenSet[str]],
        result: StageResult,
    ) -> Optional[CandidateProposal]:
        part_sim = part_similarity(item.canonical_part_number, supplier.canonical_part_number)
        desc_sim = description_similarity(item.description, supplier.description)
        has_both_descriptions = bool(item.description and supplier.description)

        mapped_manufacturer = line_mappings.get(resolver.resolve_line_code(item.line_code) or "")
        supplier_brand = resolver.resolve_brand(supplier.brand) or resolver.resolve_line_code(supplier.line_code)

        if project.fuzzy_hard_reject_enabled:
            reason = hard_reject_reason(
                item.subcategory or item.category,
                supplier.subcategory or supplier.category,
                mapped_manufacturer,
                supplier_brand,
                has_both_descriptions,
                desc_sim,
                part_sim,
            )
            if reason:
                result.rejected_pairs += 1
                logger.debug(
                    "Fuzzy pair hard-rejected",
                    extra={"project_id": project.id, "store_item_id": str(item.id), "reason": reason},
                )
                return None

        mfr_sim = None
        if item.manufacturer_part_canonical and supplier.manufacturer_part_canonical:
            mfr_sim = part_similarity(item.manufacturer_part_canonical, supplier.manufacturer_part_canonical)
        cost = cost_sanity(item.cost, supplier.cost)

        confidence = (
            part_sim * WEIGHT_PART
            + desc_sim * WEIGHT_DESCRIPTION
            + (mfr_sim or 0.0) * WEIGHT_MANUFACTURER_PART
            + cost * WEIGHT_COST
        )

        boosts = []
        if (
            project.enable_rule_based_fuzzy_boosts
            and project.enable_punctuation_equivalence
            and punctuation_rules
            and strip_separators(item.part_number) == strip_separators(supplier.part_number)
        ):
            boosts.append({"rule_id": punctuation_rules[0], "type": "PUNCTUATION_EQUIVALENCE",
                           "boost": PUNCTUATION_EQUIVALENCE_BOOST})
            confidence += PUNCTUATION_EQUIVALENCE_BOOST

        confidence = min(1.0, max(0.0, confidence))

        collision_key = self._collision_key(item, supplier)
        confidence, collision = apply_collision_cap(
            confidence,
            brand_counts.get(collision_key, 0) if collision_key else 0,
            mapping_names_brand=bool(mapped_manufacturer and mapped_manufacturer == supplier_brand),
            description_similarity=desc_sim,
            interchange_bridge=frozenset((item.canonical_part_number, supplier.canonical_part_number)) in bridges,
        )

        if confidence < self.min_confidence:
            return None

        return CandidateProposal(
            store_item_id=item.id,
            target_type=TargetType.SUPPLIER,
            target_id=str(supplier.id),
            target_part_number=supplier.part_number,
            method=MatchMethod.FUZZY_SUBSTRING,
            confidence=round(confidence, 4),
            matched_on="prefix_shortlist",
            features={
                "part_similarity": round(part_sim, 4),
                "description_similarity": round(desc_sim, 4),
                "mfr_part_similarity": round(mfr_sim, 4) if mfr_sim is not None else None,
                "cost_sanity": round(cost, 4),
                "rule_boosts": boosts,
                "collision": collision.to_dict(),
            },
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _approved_rules(self, project_id: UUID, resolver: AliasResolver) -> Tuple[List[str], Dict[str, str]]:
        """Approved punctuation rule ids and resolved line code -> manufacturer mappings."""
        punctuation_rules: List[str] = []
        line_mappings: Dict[str, str] = {}
        for rule in load_approved_rules(self.db, project_id):
            if rule.rule_type == SuggestedRuleType.PUNCTUATION_EQUIVALENCE:
                punctuation_rules.append(str(rule.id))
            elif rule.rule_type == SuggestedRuleType.LINE_CODE_MAPPING and rule.mapped_manufacturer:
                source = resolver.resolve_line_code(rule.source_line_code or rule.pattern_key)
                if source:
                    line_mappings[source] = resolver.resolve_brand(rule.mapped_manufacturer)
        return punctuation_rules, line_mappings

    def _shortlist(self, project_id: UUID, item: StoreItem) -> List[SupplierItem]:
        prefix = (item.canonical_part_number or "")[: self.prefix_length]
        if not prefix:
            return []
        stmt = (
            select(SupplierItem)
            .where(
                or_(
                    SupplierItem.canonical_part_number.startswith(prefix),
                    SupplierItem.manufacturer_part_canonical.startswith(prefix),
                ),
                supplier_scope(project_id),
            )
            .order_by(SupplierItem.id)
            .limit(self.shortlist_size)
        )
        return list(self.db.execute(stmt).scalars().all())

    @staticmethod
    def _collision_key(item: StoreItem, supplier: SupplierItem) -> Optional[str]:
        return supplier.manufacturer_part_canonical or item.manufacturer_part_canonical

    def _brand_counts(self, project_id: UUID, keys: Set[str]) -> Dict[str, int]:
        """Distinct supplier brands per manufacturer key, in one grouped query."""
        if not keys:
            return {}
        key_list = list(keys)
        by_mfr = select(
            SupplierItem.manufacturer_part_canonical.label("key"), SupplierItem.brand.label("brand")
        ).where(SupplierItem.manufacturer_part_canonical.in_(key_list), supplier_scope(project_id))
        by_canonical = select(
            SupplierItem.canonical_part_number.label("key"), SupplierItem.brand.label("brand")
        ).where(SupplierItem.canonical_part_number.in_(key_list), supplier_scope(project_id))
        keyed = union_all(by_mfr, by_canonical).subquery()
        rows = self.db.execute(
            select(keyed.c.key, func.count(func.distinct(func.upper(keyed.c.brand))))
            .where(keyed.c.brand.is_not(None))
            .group_by(keyed.c.key)
        ).all()
        return {key: count for key, count in rows}

    def _interchange_bridges(self, project_id: UUID, store_keys: Set[str]) -> Set[FrozenSet[str]]:
        if not store_keys:
            return set()
        key_list = list(store_keys)
        rows = self.db.execute(
            select(Interchange.theirs_canonical, Interchange.ours_canonical).where(
                or_(Interchange.theirs_canonical.in_(key_list), Interchange.ours_canonical.in_(key_list)),
                or_(Interchange.project_id == project_id, Interchange.project_id.is_(None)),
            )
        ).all()
        return {frozenset((theirs, ours)) for theirs, ours in rows}
