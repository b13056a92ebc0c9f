"""Human review of match candidates"""

from .exceptions import ReviewError
from .service import BulkDecisionResult, DecisionRequest, ReviewService, MAX_REPORTED_ERRORS

__all__ = [
    "ReviewError",
    "BulkDecisionResult",
    "DecisionRequest",
    "ReviewService",
    "MAX_REPORTED_ERRORS",
]
