"""Stage plans per job type and construction of stage runners."""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from config import get_settings
from domain.ai import LLMProviderPort
from matching.ai_matcher import AIFallbackMatcher
from matching.deterministic_matcher import DeterministicMatcher
from matching.fuzzy_matcher import FuzzyMatcher
from matching.ports import MatcherStagePort, StageResult
from matching.supersession_matcher import SupersessionMatcher
from models.matching_job import JobType
from normalization import AliasCache
from rules.master_rule_matcher import MasterRuleApplier

STAGE_EXACT = "exact"
STAGE_FUZZY = "fuzzy"
STAGE_AI = "ai"
STAGE_SUPERSESSION = "supersession"

# Stages that wait on the LLM provider per item
AI_STAGES = (STAGE_AI, STAGE_SUPERSESSION)

STAGE_PLANS: Dict[JobType, List[str]] = {
    JobType.EXACT: [STAGE_EXACT],
    JobType.FUZZY: [STAGE_FUZZY],
    JobType.AI: [STAGE_AI],
    JobType.SUPERSESSION: [STAGE_SUPERSESSION],
    JobType.FULL: [STAGE_EXACT, STAGE_FUZZY, STAGE_AI, STAGE_SUPERSESSION],
}


def chunk_size(stage_name: str) -> int:
    settings = get_settings()
    return {
        STAGE_EXACT: settings.EXACT_CHUNK_SIZE,
        STAGE_FUZZY: settings.FUZZY_CHUNK_SIZE,
        STAGE_AI: settings.AI_CHUNK_SIZE,
        STAGE_SUPERSESSION: settings.SUPERSESSION_CHUNK_SIZE,
    }[stage_name]


def lease_seconds(stage_name: str) -> int:
    """Lease long enough for one chunk of the stage to finish.

    AI stages wait up to the request delay plus the request timeout per item,
    so their lease grows with the chunk size; JOB_LEASE_SECONDS is the floor.
    """
    settings = get_settings()
    if stage_name not in AI_STAGES:
        return settings.JOB_LEASE_SECONDS
    per_item = settings.AI_REQUEST_DELAY_SECONDS + settings.AI_REQUEST_TIMEOUT_SECONDS
    return max(settings.JOB_LEASE_SECONDS, int(chunk_size(stage_name) * per_item) + 60)


@dataclass
class CompositeStage(MatcherStagePort):
    """Runs several matchers over the same chunk, in order, and merges their counters.

    Each part re-filters the chunk to items still unmatched, so a part only
    sees what the previous ones left.
    """
    name: str
    parts: List[MatcherStagePort] = field(default_factory=list)

    def run(self, project_id: UUID, store_item_ids: Sequence[UUID], job_id: Optional[UUID] = None) -> StageResult:
        merged = StageResult(stage=self.name, processed=len(store_item_ids))
        for part in self.parts:
            result = part.run(project_id, store_item_ids, job_id)
            merged.candidates_created += result.candidates_created
            merged.duplicates_skipped += result.duplicates_skipped
            merged.rejected_pairs += result.rejected_pairs
            merged.errors += result.errors
            merged.cost_micros += result.cost_micros
            merged.budget_exhausted = merged.budget_exhausted or result.budget_exhausted
            merged.unprocessed_item_ids.extend(result.unprocessed_item_ids)
        return merged


StageFactory = Callable[[str, Session], MatcherStagePort]


def default_stage_factory(
    provider: Optional[LLMProviderPort] = None,
    alias_cache: Optional[AliasCache] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> StageFactory:
    """Build a factory producing the runner for a stage name.

    The exact stage applies master rules (stage 0) before the deterministic joins.
    """

    def build(stage_name: str, db: Session) -> MatcherStagePort:
        if stage_name == STAGE_EXACT:
            return CompositeStage(
                name=STAGE_EXACT,
                parts=[MasterRuleApplier(db), DeterministicMatcher(db, alias_cache)],
            )
        if stage_name == STAGE_FUZZY:
            return CompositeStage(name=STAGE_FUZZY, parts=[FuzzyMatcher(db, alias_cache)])
        if stage_name == STAGE_AI:
            kwargs = {"sleep": sleep} if sleep is not None else {}
            return CompositeStage(name=STAGE_AI, parts=[AIFallbackMatcher(db, provider, **kwargs)])
        if stage_name == STAGE_SUPERSESSION:
            kwargs = {"sleep": sleep} if sleep is not None else {}
            return CompositeStage(
                name=STAGE_SUPERSESSION,
                parts=[SupersessionMatcher(db, provider, alias_cache, **kwargs)],
            )
        raise ValueError(f"Unknown stage: {stage_name}")

    return build
