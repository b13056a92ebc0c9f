"""Shared set-oriented queries for matcher stages."""

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, exists, func, or_
from sqlalchemy.orm import Session

from models.match_candidate import MatchCandidate, MatchStatus
from models.store_item import StoreItem
from models.supplier_item import SupplierItem


def has_active_candidate():
    """Correlated EXISTS: the store item already owns a non-rejected candidate."""
    return exists().where(
        MatchCandidate.store_item_id == StoreItem.id,
        MatchCandidate.status != MatchStatus.REJECTED,
    )


def supplier_scope(project_id: UUID):
    """Supplier rows visible to a project: its own plus the global catalog."""
    return or_(SupplierItem.project_id == project_id, SupplierItem.project_id.is_(None))


def select_unmatched_ids(
    db: Session,
    project_id: UUID,
    store_item_ids: Optional[Sequence[UUID]] = None,
    after_id: Optional[UUID] = None,
    limit: Optional[int] = None,
) -> List[UUID]:
    """Store item ids in a project with no active candidate, ordered by id.

    Args:
        db: Database session
        project_id: Project to scan
        store_item_ids: Restrict to these ids (a chunk)
        after_id: Keyset cursor; only ids greater than this are returned
        limit: Maximum number of ids

    Returns:
        Ordered list of store item ids
    """
    stmt = select(StoreItem.id).where(
        StoreItem.project_id == project_id,
        ~has_active_candidate(),
    )
    if store_item_ids is not None:
        stmt = stmt.where(StoreItem.id.in_(list(store_item_ids)))
    if after_id is not None:
        stmt = stmt.where(StoreItem.id > after_id)
    stmt = stmt.order_by(StoreItem.id)
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(db.execute(stmt).scalars().all())


def count_unmatched(db: Session, project_id: UUID) -> int:
    return db.execute(
        select(func.count(StoreItem.id)).where(
            StoreItem.project_id == project_id,
            ~has_active_candidate(),
        )
    ).scalar_one()

