"""Vendor action application to confirmed matches."""

import logging
from collections import Counter
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update, or_
from sqlalchemy.orm import Session

from models.match_candidate import MatchCandidate, MatchStatus, TargetType, VendorAction
from models.store_item import StoreItem
from models.supplier_item import SupplierItem
from models.vendor_action_rule import VendorActionRule
from .evaluator import evaluate_vendor_action

logger = logging.getLogger(__name__)

UPDATE_BATCH = 500


class VendorActionService:
    """Tag CONFIRMED supplier matches with the vendor action their rules dictate."""

    def __init__(self, db: Session):
        self.db = db

    def load_rules(self, project_id: UUID) -> List[VendorActionRule]:
        return list(
            self.db.execute(
                select(VendorActionRule)
                .where(
                    VendorActionRule.active.is_(True),
                    or_(VendorActionRule.project_id == project_id, VendorActionRule.project_id.is_(None)),
                )
                .order_by(VendorActionRule.created_at, VendorActionRule.id)
            ).scalars().all()
        )

    def create_rule(
        self,
        supplier_line_code: str,
        action: VendorAction,
        category_pattern: str = "*",
        subcategory_pattern: str = "*",
        project_id: Optional[UUID] = None,
    ) -> VendorActionRule:
        rule = VendorActionRule(
            project_id=project_id,
            supplier_line_code=supplier_line_code.strip().upper(),
            category_pattern=category_pattern.strip() or "*",
            subcategory_pattern=subcategory_pattern.strip() or "*",
            action=action,
        )
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def apply_to_confirmed_matches(self, project_id: UUID) -> Dict[str, object]:
        """Evaluate every CONFIRMED supplier match of a project and commit.

        Idempotent: only rows whose action changes are written.

        Returns:
            {"total": n, "updated": n, "by_action": {action: count}}
        """
        rules = self.load_rules(project_id)
        rows = self.db.execute(
            select(
                MatchCandidate.id,
                MatchCandidate.vendor_action,
                MatchCandidate.target_id,
                StoreItem.category,
                StoreItem.subcategory,
            )
            .select_from(MatchCandidate)
            .join(StoreItem, StoreItem.id == MatchCandidate.store_item_id)
            .where(
                MatchCandidate.project_id == project_id,
                MatchCandidate.status == MatchStatus.CONFIRMED,
                MatchCandidate.target_type == TargetType.SUPPLIER,
            )
        ).all()

        suppliers = {}
        supplier_ids = list({UUID(r.target_id) for r in rows})
        for start in range(0, len(supplier_ids), UPDATE_BATCH):
            for sid, line_code, brand, category, subcategory in self.db.execute(
                select(
                    SupplierItem.id, SupplierItem.line_code, SupplierItem.brand,
                    SupplierItem.category, SupplierItem.subcategory,
                ).where(SupplierItem.id.in_(supplier_ids[start:start + UPDATE_BATCH]))
            ):
                suppliers[str(sid)] = (line_code or brand, category, subcategory)

        by_action: Counter = Counter()
        changes: Dict[VendorAction, List[UUID]] = {}
        for row in rows:
            line_code, category, subcategory = suppliers.get(row.target_id, (None, None, None))
            action = evaluate_vendor_action(
                rules,
                line_code,
                category or row.category,
                subcategory or row.subcategory,
                project_id,
            )
            by_action[action.value] += 1
            if action != row.vendor_action:
                changes.setdefault(action, []).append(row.id)

        updated = 0
        for action, ids in changes.items():
            for start in range(0, len(ids), UPDATE_BATCH):
                batch = ids[start:start + UPDATE_BATCH]
                self.db.execute(
                    update(MatchCandidate).where(MatchCandidate.id.in_(batch)).values(vendor_action=action)
                )
                updated += len(batch)
        self.db.commit()

        summary = {"total": len(rows), "updated": updated, "by_action": dict(by_action)}
        logger.info("Vendor actions applied", extra={"project_id": project_id, "total": len(rows), "updated": updated})
        return summary
