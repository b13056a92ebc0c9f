"""Celery tasks for rule learning and pattern mining."""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from celery import shared_task
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from database import SessionLocal
from models.base import utcnow
from .learner import Decision, MasterRuleLearner
from .pattern_miner import PatternMiner, projects_with_new_confirmations

logger = logging.getLogger(__name__)


@shared_task(name="rules.learn_from_decisions", bind=True)
def learn_from_decisions_task(self, decisions: List[Dict[str, Any]]) -> Dict[str, int]:
    """Learn master rules from committed review decisions.

    Idempotent: rules are deduplicated on their natural key, so a retried
    delivery creates nothing new.

    Args:
        decisions: Decision payloads (see Decision.to_payload)

    Returns:
        {"created": n, "skipped": n, "errors": n}
    """
    db = SessionLocal()
    try:
        stats = MasterRuleLearner(db).learn_from_decisions(Decision.from_payload(d) for d in decisions)
    finally:
        db.close()
    logger.info("Rule learning task finished", extra={"task_id": self.request.id, "rules_created": stats["created"], "rules_skipped": stats["skipped"]})
    return stats


@shared_task(name="rules.mine_patterns", bind=True)
def mine_patterns_task(self, window_seconds: Optional[int] = None) -> Dict[str, Dict[str, int]]:
    """Re-mine suggestions for projects with confirmations in the last window.

    Scheduled by beat every PATTERN_MINING_INTERVAL_SECONDS; the window
    defaults to the same interval. A failing project is logged and skipped.

    Returns:
        Mining counters keyed by project id
    """
    window = window_seconds or get_settings().PATTERN_MINING_INTERVAL_SECONDS
    since = utcnow() - timedelta(seconds=window)
    results: Dict[str, Dict[str, int]] = {}
    db = SessionLocal()
    try:
        for project_id in projects_with_new_confirmations(db, since):
            try:
                results[str(project_id)] = PatternMiner(db).mine(project_id).to_dict()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(
                    f"Pattern mining failed: {e}",
                    extra={"task_id": self.request.id, "project_id": project_id},
                )
    finally:
        db.close()
    logger.info("Pattern mining task finished", extra={"task_id": self.request.id, "projects": len(results)})
    return results
