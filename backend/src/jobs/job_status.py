"""MatchingJob state machine

State flow:
pending → processing → completed | failed | cancelled
pending → cancelled (cancelled before the first chunk ran)
"""

from typing import Optional, Dict, List

from models.matching_job import JobStatus


# State transition rules
ALLOWED_TRANSITIONS: Dict[Optional[JobStatus], List[JobStatus]] = {
    None: [JobStatus.PENDING],
    JobStatus.PENDING: [JobStatus.PROCESSING, JobStatus.CANCELLED, JobStatus.FAILED],
    JobStatus.PROCESSING: [JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED],
    JobStatus.COMPLETED: [],  # Terminal
    JobStatus.FAILED: [],  # Terminal; create a new job to retry
    JobStatus.CANCELLED: [],  # Terminal
}

ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)


def can_transition(from_status: Optional[JobStatus], to_status: JobStatus) -> bool:
    """Validate if status transition is allowed

    Example:
        >>> can_transition(JobStatus.PENDING, JobStatus.PROCESSING)
        True
        >>> can_transition(JobStatus.COMPLETED, JobStatus.PROCESSING)
        False
    """
    allowed = ALLOWED_TRANSITIONS.get(from_status, [])
    return to_status in allowed


def get_allowed_transitions(from_status: Optional[JobStatus]) -> List[JobStatus]:
    return ALLOWED_TRANSITIONS.get(from_status, [])


def is_terminal(status: JobStatus) -> bool:
    return not ALLOWED_TRANSITIONS.get(status)
