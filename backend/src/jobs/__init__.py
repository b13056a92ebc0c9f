"""Matching job orchestration"""

from .exceptions import JobError, JobNotFoundError, InvalidJobTransitionError
from .job_status import ACTIVE_STATUSES, ALLOWED_TRANSITIONS, can_transition, get_allowed_transitions, is_terminal
from .orchestrator import AdvanceOutcome, JobOrchestrator
from .stages import STAGE_PLANS, CompositeStage, chunk_size, default_stage_factory

__all__ = [
    "JobError",
    "JobNotFoundError",
    "InvalidJobTransitionError",
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "get_allowed_transitions",
    "is_terminal",
    "AdvanceOutcome",
    "JobOrchestrator",
    "STAGE_PLANS",
    "CompositeStage",
    "chunk_size",
    "default_stage_factory",
]
