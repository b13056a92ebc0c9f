"""Post-commit dispatch of recorded review decisions to the rule learner.

The review service commits its decisions first and only then publishes a
DecisionsRecorded event. By default the event is handed to the Celery task
``rules.learn_from_decisions``; with RULE_LEARNING_ASYNC disabled (tests, or
running without workers) learning runs inline on a fresh session.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from config import get_settings
from database import SessionLocal
from .learner import Decision, MasterRuleLearner

logger = logging.getLogger(__name__)


@dataclass
class DecisionsRecorded:
    project_id: str
    decisions: List[Decision] = field(default_factory=list)

    def to_payload(self) -> List[Dict[str, Any]]:
        return [d.to_payload() for d in self.decisions]


Dispatcher = Callable[[DecisionsRecorded], Optional[Dict[str, int]]]


def learn_inline(event: DecisionsRecorded) -> Dict[str, int]:
    """Run learning synchronously on its own session."""
    db = SessionLocal()
    try:
        return MasterRuleLearner(db).learn_from_decisions(event.decisions)
    finally:
        db.close()


def enqueue_learning(event: DecisionsRecorded) -> None:
    from .tasks import learn_from_decisions_task

    learn_from_decisions_task.delay(event.to_payload())


def dispatch_decisions_recorded(event: DecisionsRecorded, dispatcher: Optional[Dispatcher] = None) -> None:
    """Hand decisions to the learner. Never raises; a decision is already durable.

    Args:
        event: Decisions that were just committed
        dispatcher: Override for where the event goes (defaults per RULE_LEARNING_ASYNC)
    """
    if not event.decisions:
        return
    if dispatcher is None:
        dispatcher = enqueue_learning if get_settings().RULE_LEARNING_ASYNC else learn_inline
    try:
        dispatcher(event)
    except Exception as e:
        logger.error(
            f"Rule learning dispatch failed: {e}",
            extra={"project_id": event.project_id, "decisions": len(event.decisions)},
            exc_info=True,
        )
