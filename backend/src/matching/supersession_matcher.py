"""Supersession lookup for discontinued parts.

Runs after the AI fallback over items still unmatched. The provider is asked
whether the store part was superseded; a known replacement is then looked up
in the supplier catalog by canonical key. The match is indirect, so the model
confidence is discounted and capped, and candidates always wait for review.
Calls share the job's cost ceiling and ai_call_log with the AI stage.
"""

import logging
import time
from typing import Callable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import get_settings
from domain.ai import AICallLogger, AICallType, BudgetGate, LLMError, LLMProviderPort
from infrastructure.ai import CostCalculator
from models.ai_call_log import AICallStatus
from models.match_candidate import MatchMethod, MatchStatus, TargetType
from models.matching_job import MatchingJob
from models.store_item import StoreItem
from models.supplier_item import SupplierItem
from normalization import AliasCache, AliasResolver, normalize_part_number
from observability.metrics import ai_calls_total
from rules.master_rule_matcher import BlockedPairs, load_blocked_pairs
from .ai_matcher import _record_call_metrics, _request_for, get_llm_provider
from .candidate_writer import save_candidates
from .ports import CandidateProposal, MatcherError, MatcherStagePort, StageResult
from .queries import select_unmatched_ids, supplier_scope

logger = logging.getLogger(__name__)

# Model answers that mean "no manufacturer named"
_UNKNOWN_MANUFACTURERS = {"UNKNOWN", "N/A", "NA"}


def supersession_confidence(model_confidence: float, factor: float, ceiling: float) -> float:
    """Discount a model confidence for the indirect hop and cap it."""
    return round(min(model_confidence * factor, ceiling), 4)


class SupersessionMatcher(MatcherStagePort):
    """Match unmatched store items through a known replacement part.

    Args:
        db: Database session
        provider: LLM provider (defaults to OpenAI from settings)
        alias_cache: Line code alias cache for comparing manufacturers
        sleep: Delay function between calls, injectable for tests
        request_delay: Seconds between calls (AI_REQUEST_DELAY_SECONDS)
    """

    name = "supersession"

    def __init__(
        self,
        db: Session,
        provider: Optional[LLMProviderPort] = None,
        alias_cache: Optional[AliasCache] = None,
        sleep: Callable[[float], None] = time.sleep,
        request_delay: Optional[float] = None,
    ):
        settings = get_settings()
        self.db = db
        self._provider = provider
        self.alias_cache = alias_cache
        self.sleep = sleep
        self.request_delay = settings.AI_REQUEST_DELAY_SECONDS if request_delay is None else request_delay
        self.min_confidence = settings.SUPERSESSION_MIN_CONFIDENCE
        self.factor = settings.SUPERSESSION_CONFIDENCE_FACTOR
        self.ceiling = settings.SUPERSESSION_MAX_CONFIDENCE

    @property
    def provider(self) -> LLMProviderPort:
        if self._provider is None:
            self._provider = get_llm_provider()
        return self._provider

    def run(self, project_id: UUID, store_item_ids: Sequence[UUID], job_id: Optional[UUID] = None) -> StageResult:
        result = StageResult(stage=self.name)
        ids = select_unmatched_ids(self.db, project_id, store_item_ids)
        if not ids:
            return result

        job_config = None
        if job_id is not None:
            job = self.db.get(MatchingJob, job_id)
            if job is None:
                raise MatcherError(f"Job {job_id} not found")
            job_config = job.config

        resolver = AliasResolver(self.db, project_id, self.alias_cache)
        blocked = load_blocked_pairs(self.db, project_id)
        items = self.db.execute(
            select(StoreItem).where(StoreItem.id.in_(ids)).order_by(StoreItem.id)
        ).scalars().all()

        proposals: List[CandidateProposal] = []
        for index, item in enumerate(items):
            allowed, usage, ceiling = BudgetGate.check_budget_gate(self.db, job_id, job_config, project_id)
            if not allowed:
                result.budget_exhausted = True
                result.unprocessed_item_ids = [i.id for i in items[index:]]
                logger.warning(
                    "AI cost ceiling reached during supersession lookup",
                    extra={
                        "project_id": project_id,
                        "job_id": job_id,
                        "spent": CostCalculator.format_cost_usd(usage),
                        "ceiling": CostCalculator.format_cost_usd(ceiling),
                        "unprocessed": len(result.unprocessed_item_ids),
                    },
                )
                break

            if index > 0 and self.request_delay > 0:
                self.sleep(self.request_delay)

            result.processed += 1
            proposal = self._lookup(project_id, job_id, item, resolver, blocked, result)
            if proposal is not None:
                proposals.append(proposal)

        created, skipped = save_candidates(self.db, project_id, proposals)
        result.candidates_created = created
        result.duplicates_skipped = skipped
        logger.info(
            "Supersession stage finished",
            extra={"project_id": project_id, "job_id": job_id, **result.to_dict()},
        )
        return result

    def _lookup(
        self,
        project_id: UUID,
        job_id: Optional[UUID],
        item: StoreItem,
        resolver: AliasResolver,
        blocked: BlockedPairs,
        result: StageResult,
    ) -> Optional[CandidateProposal]:
        request = _request_for(item)
        input_hash = AICallLogger.compute_input_hash(
            AICallType.LLM_SUPERSESSION.value, f"{request.identifier}|{request.name}|{request.description}", project_id
        )
        try:
            response = self.provider.find_supersession(request)
        except LLMError as e:
            result.errors += 1
            ai_calls_total.labels(
                call_type=AICallType.LLM_SUPERSESSION.value, provider=type(self.provider).__name__, status="FAILED"
            ).inc()
            AICallLogger.log_failure(
                self.db,
                project_id=project_id,
                call_type=AICallType.LLM_SUPERSESSION,
                provider=type(self.provider).__name__,
                model="unknown",
                error_json={"type": type(e).__name__, "message": str(e)},
                input_hash=input_hash,
                job_id=job_id,
                store_item_id=item.id,
            )
            logger.warning(
                f"Supersession lookup failed: {e}",
                extra={"project_id": project_id, "job_id": job_id, "store_item_id": str(item.id)},
            )
            return None

        meta = response.metadata
        AICallLogger.log_call(
            self.db,
            project_id=project_id,
            call_type=AICallType.LLM_SUPERSESSION,
            provider=meta.provider,
            model=meta.model,
            prompt_tokens=meta.tokens_in,
            completion_tokens=meta.tokens_out,
            cost_micros=meta.cost_micros,
            latency_ms=meta.latency_ms,
            status=AICallStatus.SUCCEEDED,
            input_hash=input_hash,
            job_id=job_id,
            store_item_id=item.id,
        )
        result.cost_micros += meta.cost_micros
        _record_call_metrics(AICallType.LLM_SUPERSESSION, meta)

        replacement_key = normalize_part_number(response.replacement_part)
        if not response.superseded or not replacement_key or response.confidence < self.min_confidence:
            return None

        manufacturer = (response.manufacturer or "").strip()
        brand = None if manufacturer.upper() in _UNKNOWN_MANUFACTURERS else resolver.resolve_brand(manufacturer)

        supplier = None
        for row in self.db.execute(
            select(SupplierItem.id, SupplierItem.part_number, SupplierItem.line_code)
            .where(SupplierItem.canonical_part_number == replacement_key, supplier_scope(project_id))
            .order_by(SupplierItem.id)
        ):
            if brand is None or resolver.resolve_line_code(row.line_code) == brand:
                supplier = row
                break
        if supplier is None:
            return None

        if blocked.blocks(item.canonical_part_number, replacement_key, item.line_code, supplier.line_code):
            result.rejected_pairs += 1
            return None

        return CandidateProposal(
            store_item_id=item.id,
            target_type=TargetType.SUPPLIER,
            target_id=str(supplier.id),
            target_part_number=supplier.part_number,
            method=MatchMethod.SUPERSESSION,
            confidence=supersession_confidence(response.confidence, self.factor, self.ceiling),
            status=MatchStatus.PENDING,
            matched_on="supersession",
            features={
                "original_part": item.part_number,
                "replacement_part": response.replacement_part,
                "manufacturer": manufacturer or None,
                "model_confidence": response.confidence,
                "reasoning": response.reasoning,
            },
        )


__all__ = ["SupersessionMatcher", "supersession_confidence"]
