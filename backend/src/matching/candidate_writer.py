"""Insert-only persistence for matcher proposals.

Existing (store item, target) pairs are filtered out with one query before
the bulk insert. The unique constraint stays the backstop against a
concurrent writer: if the bulk insert trips it, rows are retried one by one
inside savepoints and duplicates are counted as skips.
"""

import logging
from typing import Iterable, List, Tuple
from uuid import UUID

from sqlalchemy import select, insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.base import utcnow
from models.match_candidate import MatchCandidate, MatchStatus
from .ports import CandidateProposal

logger = logging.getLogger(__name__)


def _row(project_id: UUID, proposal: CandidateProposal) -> dict:
    decided = proposal.status != MatchStatus.PENDING
    return {
        "project_id": project_id,
        "store_item_id": proposal.store_item_id,
        "target_type": proposal.target_type,
        "target_id": proposal.target_id,
        "target_part_number": proposal.target_part_number,
        "method": proposal.method,
        "confidence": round(float(proposal.confidence), 4),
        "status": proposal.status,
        "matched_on": proposal.matched_on,
        "features": proposal.features or None,
        "review_source": proposal.review_source if decided else None,
        "decided_at": utcnow() if decided else None,
    }


def save_candidates(db: Session, project_id: UUID, proposals: Iterable[CandidateProposal]) -> Tuple[int, int]:
    """Persist proposals, skipping pairs that already exist.

    Does not commit; the caller owns the transaction.

    Args:
        db: Database session
        project_id: Project owning the candidates
        proposals: Candidates to insert

    Returns:
        (created, skipped) counts
    """
    unique: dict = {}
    for p in proposals:
        key = (p.store_item_id, p.target_type, p.target_id)
        current = unique.get(key)
        if current is None or p.confidence > current.confidence:
            unique[key] = p
    if not unique:
        return 0, 0

    store_ids = list({k[0] for k in unique})
    existing = {
        tuple(r)
        for r in db.execute(
            select(MatchCandidate.store_item_id, MatchCandidate.target_type, MatchCandidate.target_id)
            .where(MatchCandidate.project_id == project_id, MatchCandidate.store_item_id.in_(store_ids))
        ).all()
    }
    rows: List[dict] = [_row(project_id, p) for k, p in unique.items() if k not in existing]
    skipped = len(unique) - len(rows)
    if not rows:
        return 0, skipped

    try:
        with db.begin_nested():
            db.execute(insert(MatchCandidate), rows)
        return len(rows), skipped
    except IntegrityError:
        logger.info(
            "Bulk candidate insert hit uniqueness backstop, retrying row by row",
            extra={"project_id": project_id, "rows": len(rows)},
        )

    created = 0
    for row in rows:
        try:
            with db.begin_nested():
                db.execute(insert(MatchCandidate), [row])
            created += 1
        except IntegrityError:
            skipped += 1
    return created, skipped
