"""AI fallback matching and catalog enrichment.

Model output is untrusted and non-idempotent. Every call is recorded in
ai_call_log before the next one is made, so the per-job budget gate always
sees the spend so far. Provider failures (timeouts, rate limits, bad JSON)
mean "no result" for that item; the stage carries on with the next one.
"""

import logging
import time
from typing import Callable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import get_settings
from domain.ai import (
    AICallLogger,
    AICallType,
    BudgetGate,
    BudgetGateError,
    LLMError,
    LLMProviderPort,
    PartMatchRequest,
)
from infrastructure.ai import CostCalculator
from models.ai_call_log import AICallStatus
from models.enrichment_data import EnrichmentData
from models.match_candidate import MatchCandidate, MatchMethod, MatchStatus, ReviewSource, TargetType
from models.matching_job import MatchingJob
from models.store_item import StoreItem
from models.supplier_item import SupplierItem
from normalization import normalize_part_number
from observability.metrics import ai_calls_total, ai_cost_micros_total, ai_latency_ms
from rules.master_rule_matcher import load_blocked_pairs
from .candidate_writer import save_candidates
from .ports import CandidateProposal, MatcherError, MatcherStagePort, StageResult
from .queries import select_unmatched_ids, supplier_scope

logger = logging.getLogger(__name__)


def get_llm_provider() -> LLMProviderPort:
    """Default provider from settings."""
    from infrastructure.ai import OpenAIProvider

    return OpenAIProvider()


def _record_call_metrics(call_type: AICallType, meta) -> None:
    ai_calls_total.labels(call_type=call_type.value, provider=meta.provider, status="SUCCEEDED").inc()
    ai_latency_ms.labels(call_type=call_type.value, provider=meta.provider).observe(meta.latency_ms)
    ai_cost_micros_total.labels(call_type=call_type.value, provider=meta.provider).inc(meta.cost_micros)


def _request_for(item: StoreItem) -> PartMatchRequest:
    return PartMatchRequest(
        identifier=item.part_number,
        name=item.line_code,
        description=item.description,
        context={"category": item.category, "subcategory": item.subcategory},
    )


class AIFallbackMatcher(MatcherStagePort):
    """LLM-backed matching for items the earlier stages could not resolve.

    Args:
        db: Database session
        provider: LLM provider (defaults to OpenAI from settings)
        sleep: Delay function between calls, injectable for tests
        request_delay: Seconds between calls (AI_REQUEST_DELAY_SECONDS)
        confirm_threshold: Confidence at or above which a suggestion is auto-confirmed
    """

    name = "ai"

    def __init__(
        self,
        db: Session,
        provider: Optional[LLMProviderPort] = None,
        sleep: Callable[[float], None] = time.sleep,
        request_delay: Optional[float] = None,
        confirm_threshold: Optional[float] = None,
    ):
        settings = get_settings()
        self.db = db
        self._provider = provider
        self.sleep = sleep
        self.request_delay = settings.AI_REQUEST_DELAY_SECONDS if request_delay is None else request_delay
        self.confirm_threshold = settings.AI_CONFIRM_THRESHOLD if confirm_threshold is None else confirm_threshold

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
                    "AI cost ceiling reached, leaving items for a later run",
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
            proposal = self._match_item(project_id, job_id, item, blocked, result)
            if proposal is not None:
                proposals.append(proposal)

        created, skipped = save_candidates(self.db, project_id, proposals)
        result.candidates_created = created
        result.duplicates_skipped = skipped
        logger.info(
            "AI stage finished",
            extra={"project_id": project_id, "job_id": job_id, **result.to_dict()},
        )
        return result

    def _match_item(self, project_id, job_id, item: StoreItem, blocked, result: StageResult) -> Optional[CandidateProposal]:
        request = _request_for(item)
        input_hash = AICallLogger.compute_input_hash(
            AICallType.LLM_MATCH_PART.value, f"{request.identifier}|{request.name}|{request.description}", project_id
        )
        try:
            response = self.provider.match_part(request)
        except LLMError as e:
            result.errors += 1
            ai_calls_total.labels(
                call_type=AICallType.LLM_MATCH_PART.value, provider=type(self.provider).__name__, status="FAILED"
            ).inc()
            AICallLogger.log_failure(
                self.db,
                project_id=project_id,
                call_type=AICallType.LLM_MATCH_PART,
                provider=type(self.provider).__name__,
                model="unknown",
                error_json={"type": type(e).__name__, "message": str(e)},
                input_hash=input_hash,
                job_id=job_id,
                store_item_id=item.id,
            )
            logger.warning(
                f"AI match failed, item left unmatched: {e}",
                extra={"project_id": project_id, "job_id": job_id, "store_item_id": str(item.id)},
            )
            return None

        meta = response.metadata
        AICallLogger.log_call(
            self.db,
            project_id=project_id,
            call_type=AICallType.LLM_MATCH_PART,
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
        _record_call_metrics(AICallType.LLM_MATCH_PART, meta)

        suggested_key = normalize_part_number(response.suggested_match)
        if not response.is_match or not suggested_key:
            return None

        confirmed = response.confidence >= self.confirm_threshold
        features = {"reasoning": response.reasoning, "suggested_match": response.suggested_match}

        supplier = self.db.execute(
            select(SupplierItem.id, SupplierItem.part_number, SupplierItem.line_code)
            .where(SupplierItem.canonical_part_number == suggested_key, supplier_scope(project_id))
            .order_by(SupplierItem.id)
            .limit(1)
        ).first()

        if supplier is not None:
            if blocked.blocks(item.canonical_part_number, suggested_key, item.line_code, supplier.line_code):
                result.rejected_pairs += 1
                return None
            target_type, target_id, target_part, method = (
                TargetType.SUPPLIER, str(supplier.id), supplier.part_number, MatchMethod.AI
            )
        else:
            target_type, target_id, target_part, method = (
                TargetType.WEB_RESULT, suggested_key, response.suggested_match, MatchMethod.WEB_SEARCH
            )

        return CandidateProposal(
            store_item_id=item.id,
            target_type=target_type,
            target_id=target_id,
            target_part_number=target_part,
            method=method,
            confidence=response.confidence,
            status=MatchStatus.CONFIRMED if confirmed else MatchStatus.PENDING,
            review_source=ReviewSource.AI_AUTO if confirmed else None,
            matched_on="ai_suggestion",
            features=features,
        )


class CatalogEnricher:
    """Ask the provider for catalog attributes of a matched part.

    Runs under the same cost ceiling as the AI stage; ad-hoc calls outside a
    job are counted against the project's job-less spend.
    """

    def __init__(self, db: Session, provider: Optional[LLMProviderPort] = None):
        self.db = db
        self._provider = provider

    @property
    def provider(self) -> LLMProviderPort:
        if self._provider is None:
            self._provider = get_llm_provider()
        return self._provider

    def enrich(self, candidate_id: UUID, job_id: Optional[UUID] = None) -> List[EnrichmentData]:
        """Create EnrichmentData rows for a candidate and commit.

        Returns:
            Rows created; empty when the provider fails or returns nothing

        Raises:
            MatcherError: Candidate not found
            BudgetGateError: Cost ceiling reached
        """
        candidate = self.db.get(MatchCandidate, candidate_id)
        if candidate is None:
            raise MatcherError(f"Match candidate {candidate_id} not found")
        item = self.db.get(StoreItem, candidate.store_item_id)

        job_config = None
        if job_id is not None:
            job = self.db.get(MatchingJob, job_id)
            job_config = job.config if job else None
        BudgetGate.enforce_budget_gate(self.db, job_id, job_config, candidate.project_id)

        try:
            response = self.provider.enrich_part(_request_for(item))
        except LLMError as e:
            AICallLogger.log_failure(
                self.db,
                project_id=candidate.project_id,
                call_type=AICallType.LLM_ENRICH_PART,
                provider=type(self.provider).__name__,
                model="unknown",
                error_json={"type": type(e).__name__, "message": str(e)},
                job_id=job_id,
                store_item_id=item.id,
            )
            self.db.commit()
            logger.warning(f"Enrichment failed: {e}", extra={"candidate_id": str(candidate_id)})
            return []

        meta = response.metadata
        AICallLogger.log_call(
            self.db,
            project_id=candidate.project_id,
            call_type=AICallType.LLM_ENRICH_PART,
            provider=meta.provider,
            model=meta.model,
            prompt_tokens=meta.tokens_in,
            completion_tokens=meta.tokens_out,
            cost_micros=meta.cost_micros,
            latency_ms=meta.latency_ms,
            status=AICallStatus.SUCCEEDED,
            job_id=job_id,
            store_item_id=item.id,
        )
        _record_call_metrics(AICallType.LLM_ENRICH_PART, meta)

        rows = [
            EnrichmentData(
                match_candidate_id=candidate.id,
                field_name=name,
                field_value=str(value),
                confidence=response.confidence,
                source="AI",
            )
            for name, value in sorted(response.attributes.items())
        ]
        self.db.add_all(rows)
        self.db.commit()
        logger.info(
            "Candidate enriched",
            extra={"project_id": candidate.project_id, "candidate_id": str(candidate_id), "fields": len(rows)},
        )
        return rows


__all__ = ["AIFallbackMatcher", "CatalogEnricher", "BudgetGateError", "get_llm_provider"]
