"""Part matching stages.

Stage modules (deterministic_matcher, fuzzy_matcher, ai_matcher) are
imported directly by the job stage registry; this package only exposes the
shared ports and writers so that rules can depend on it without a cycle.
"""

from .ports import CandidateProposal, MatcherError, MatcherStagePort, StageResult
from .candidate_writer import save_candidates

__all__ = [
    "CandidateProposal",
    "MatcherError",
    "MatcherStagePort",
    "StageResult",
    "save_candidates",
]
