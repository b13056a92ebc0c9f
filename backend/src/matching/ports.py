"""Matching ports and shared value types.

Every matcher stage takes a project and a chunk of store item ids and
returns a StageResult; candidates are proposed as CandidateProposal values
and persisted by the candidate writer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Sequence
from uuid import UUID

from models.match_candidate import MatchMethod, MatchStatus, TargetType, ReviewSource


@dataclass
class CandidateProposal:
    """A candidate a matcher stage wants to persist.

    Attributes:
        store_item_id: Store item being matched
        target_type: Kind of target (supplier item, inventory, web result)
        target_id: Key of the target within its kind
        target_part_number: Display part number of the target
        method: Provenance tag
        confidence: Score in [0, 1]
        status: PENDING unless the stage may auto-confirm
        matched_on: Short description of the key comparison that produced it
        features: Sub-scores and reasoning for auditability
        review_source: Set when status is not PENDING
    """
    store_item_id: UUID
    target_type: TargetType
    target_id: str
    target_part_number: Optional[str]
    method: MatchMethod
    confidence: float
    status: MatchStatus = MatchStatus.PENDING
    matched_on: Optional[str] = None
    features: Dict[str, Any] = field(default_factory=dict)
    review_source: Optional[ReviewSource] = None


@dataclass
class StageResult:
    """Outcome of running one stage over one chunk.

    Attributes:
        stage: Stage name
        processed: Store items the stage actually examined
        candidates_created: Rows inserted
        duplicates_skipped: Proposals dropped by the uniqueness backstop
        rejected_pairs: Pairs discarded by hard rejects or block rules
        errors: Per-item errors that were skipped
        budget_exhausted: AI stage stopped at its cost ceiling
        cost_micros: AI spend during this chunk
        unprocessed_item_ids: Items left for a later run
    """
    stage: str
    processed: int = 0
    candidates_created: int = 0
    duplicates_skipped: int = 0
    rejected_pairs: int = 0
    errors: int = 0
    budget_exhausted: bool = False
    cost_micros: int = 0
    unprocessed_item_ids: List[UUID] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "processed": self.processed,
            "candidates_created": self.candidates_created,
            "duplicates_skipped": self.duplicates_skipped,
            "rejected_pairs": self.rejected_pairs,
            "errors": self.errors,
            "budget_exhausted": self.budget_exhausted,
            "cost_micros": self.cost_micros,
            "unprocessed": len(self.unprocessed_item_ids),
        }


class MatcherStagePort(ABC):
    """Port interface for matcher stages.

    Implementations:
    - MasterRuleApplier: learned POSITIVE_MAP / NEGATIVE_BLOCK overrides
    - DeterministicMatcher: canonical-key and interchange set joins
    - FuzzyMatcher: composite scoring with hard rejects and collision guardrail
    - AIFallbackMatcher: LLM-backed suggestions under a cost ceiling
    """

    name: str = "stage"

    @abstractmethod
    def run(self, project_id: UUID, store_item_ids: Sequence[UUID], job_id: Optional[UUID] = None) -> StageResult:
        """Match a chunk of store items.

        Args:
            project_id: Project owning the store items
            store_item_ids: Chunk to process (already filtered to unmatched items)
            job_id: Job driving this chunk, if any

        Returns:
            StageResult with counters for progress tracking

        Raises:
            MatcherError: If the stage fails as a whole; nothing is persisted
        """
        pass


class MatcherError(Exception):
    """Exception raised for matching errors."""
    pass
