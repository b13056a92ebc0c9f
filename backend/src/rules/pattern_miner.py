"""Mine suggested rules from confirmed matches.

Two kinds of pattern are recognised:

- PUNCTUATION_EQUIVALENCE: confirmed pairs whose part numbers differ only by
  separators, grouped by transformation signature (e.g. slash_to_dash)
- LINE_CODE_MAPPING: a store line code that is overwhelmingly confirmed
  against a single supplier brand

Suggestions start as SUGGESTED and only affect matching once approved.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import get_settings
from models.match_candidate import MatchCandidate, MatchStatus, TargetType
from models.project_match_rule import ProjectMatchRule, SuggestedRuleStatus, SuggestedRuleType
from models.store_item import StoreItem
from models.supplier_item import SupplierItem
from normalization import compute_transformation_signature, normalize_line_code

logger = logging.getLogger(__name__)

SUPPLIER_LOOKUP_BATCH = 1000
MAX_EXAMPLES = 5


@dataclass
class MiningResult:
    confirmed_pairs: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    suggestions: List[ProjectMatchRule] = field(default_factory=list)

    def to_dict(self) -> Dict[str, int]:
        return {
            "confirmed_pairs": self.confirmed_pairs,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
        }


def projects_with_new_confirmations(db: Session, since: datetime) -> List[UUID]:
    """Projects with a supplier match confirmed at or after since."""
    rows = db.execute(
        select(MatchCandidate.project_id)
        .where(
            MatchCandidate.status == MatchStatus.CONFIRMED,
            MatchCandidate.target_type == TargetType.SUPPLIER,
            MatchCandidate.decided_at >= since,
        )
        .distinct()
    ).scalars().all()
    return sorted(rows, key=str)


class PatternMiner:
    """Scan a project's confirmed supplier matches and upsert suggestions.

    Args:
        db: Database session
        min_occurrences: Evidence needed before suggesting (PATTERN_MIN_OCCURRENCES)
        min_consistency: Top-brand share a line code must exceed (PATTERN_MIN_CONSISTENCY)
    """

    def __init__(self, db: Session, min_occurrences: Optional[int] = None, min_consistency: Optional[float] = None):
        settings = get_settings()
        self.db = db
        self.min_occurrences = min_occurrences or settings.PATTERN_MIN_OCCURRENCES
        self.min_consistency = min_consistency or settings.PATTERN_MIN_CONSISTENCY

    def mine(self, project_id: UUID) -> MiningResult:
        """Mine and upsert suggestions for a project, then commit."""
        result = MiningResult()
        pairs = self._confirmed_pairs(project_id)
        result.confirmed_pairs = len(pairs)

        signatures: Dict[str, List[Tuple[str, str]]] = defaultdict(list)
        brands_by_line: Dict[str, Counter] = defaultdict(Counter)
        for store_part, store_line, supplier_part, brand in pairs:
            signature = compute_transformation_signature(store_part, supplier_part)
            if signature:
                signatures[signature].append((store_part, supplier_part))
            line_code = normalize_line_code(store_line)
            if line_code and brand:
                brands_by_line[line_code][brand.strip().upper()] += 1

        for signature, examples in signatures.items():
            if len(examples) < self.min_occurrences:
                continue
            self._upsert(
                result,
                project_id,
                SuggestedRuleType.PUNCTUATION_EQUIVALENCE,
                pattern_key=signature,
                evidence_count=len(examples),
                config={
                    "signature": signature,
                    "examples": [{"store": s, "supplier": p} for s, p in examples[:MAX_EXAMPLES]],
                },
            )

        for line_code, brands in brands_by_line.items():
            total = sum(brands.values())
            if total < self.min_occurrences:
                continue
            brand, count = brands.most_common(1)[0]
            consistency = count / total
            if consistency <= self.min_consistency:
                continue
            self._upsert(
                result,
                project_id,
                SuggestedRuleType.LINE_CODE_MAPPING,
                pattern_key=line_code,
                evidence_count=count,
                source_line_code=line_code,
                mapped_manufacturer=brand,
                config={"consistency": round(consistency, 4), "total": total},
            )

        self.db.commit()
        logger.info(
            "Pattern mining complete",
            extra={"project_id": project_id, "suggestions_created": result.created, "suggestions_updated": result.updated},
        )
        return result

    def _confirmed_pairs(self, project_id: UUID) -> List[Tuple[str, Optional[str], str, Optional[str]]]:
        rows = self.db.execute(
            select(StoreItem.part_number, StoreItem.line_code, MatchCandidate.target_id)
            .select_from(MatchCandidate)
            .join(StoreItem, StoreItem.id == MatchCandidate.store_item_id)
            .where(
                MatchCandidate.project_id == project_id,
                MatchCandidate.status == MatchStatus.CONFIRMED,
                MatchCandidate.target_type == TargetType.SUPPLIER,
            )
        ).all()

        supplier_ids = list({UUID(target_id) for _, _, target_id in rows})
        suppliers: Dict[str, Tuple[str, Optional[str]]] = {}
        for start in range(0, len(supplier_ids), SUPPLIER_LOOKUP_BATCH):
            batch = supplier_ids[start:start + SUPPLIER_LOOKUP_BATCH]
            for sid, part_number, brand in self.db.execute(
                select(SupplierItem.id, SupplierItem.part_number, SupplierItem.brand).where(SupplierItem.id.in_(batch))
            ):
                suppliers[str(sid)] = (part_number, brand)

        pairs = []
        for store_part, store_line, target_id in rows:
            supplier = suppliers.get(target_id)
            if supplier is None:
                continue
            pairs.append((store_part, store_line, supplier[0], supplier[1]))
        return pairs

    def _upsert(
        self,
        result: MiningResult,
        project_id: UUID,
        rule_type: SuggestedRuleType,
        pattern_key: str,
        evidence_count: int,
        config: dict,
        source_line_code: Optional[str] = None,
        mapped_manufacturer: Optional[str] = None,
    ) -> None:
        existing = self.db.execute(
            select(ProjectMatchRule).where(
                ProjectMatchRule.project_id == project_id,
                ProjectMatchRule.rule_type == rule_type,
                ProjectMatchRule.pattern_key == pattern_key,
            )
        ).scalar_one_or_none()

        if existing is None:
            suggestion = ProjectMatchRule(
                project_id=project_id,
                rule_type=rule_type,
                status=SuggestedRuleStatus.SUGGESTED,
                pattern_key=pattern_key,
                source_line_code=source_line_code,
                mapped_manufacturer=mapped_manufacturer,
                evidence_count=evidence_count,
                config=config,
            )
            self.db.add(suggestion)
            result.created += 1
            result.suggestions.append(suggestion)
            return

        # Decided suggestions stay decided
        if existing.status != SuggestedRuleStatus.SUGGESTED:
            result.unchanged += 1
            return

        existing.evidence_count = evidence_count
        existing.mapped_manufacturer = mapped_manufacturer
        existing.config = config
        result.updated += 1
        result.suggestions.append(existing)
