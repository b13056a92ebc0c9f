"""
AI Call Logger - Service for logging AI calls.

Tracks every LLM API call in the ai_call_log table with cost, tokens and
latency. The per-job budget gate sums these rows, so every call (successful
or not) must be logged before the next one is made.
"""

import hashlib
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from models.ai_call_log import AICallLog, AICallStatus
from .ports import AICallType


class AICallLogger:
    """
    Service for logging AI API calls.

    Rows are flushed, not committed; they share the transaction of the chunk
    that made the call.
    """

    @staticmethod
    def compute_input_hash(
        call_type: str,
        input_text: str,
        project_id: UUID
    ) -> str:
        """
        Compute SHA256 hash of call inputs.

        Args:
            call_type: AICallType enum value
            input_text: Input text/prompt
            project_id: Project ID (part of hash so projects never share entries)

        Returns:
            Hex SHA256 hash
        """
        hash_input = f"{project_id}|{call_type}|{input_text}"
        return hashlib.sha256(hash_input.encode('utf-8')).hexdigest()

    @staticmethod
    def log_call(
        db: Session,
        project_id: UUID,
        call_type: AICallType,
        provider: str,
        model: str,
        prompt_tokens: Optional[int],
        completion_tokens: Optional[int],
        cost_micros: int,
        latency_ms: int,
        status: AICallStatus,
        input_hash: Optional[str] = None,
        job_id: Optional[UUID] = None,
        store_item_id: Optional[UUID] = None,
        error_json: Optional[dict] = None
    ) -> AICallLog:
        """
        Log an AI API call to ai_call_log table.

        Args:
            db: Database session
            project_id: Project ID
            call_type: AICallType enum value
            provider: Provider name (e.g., 'openai')
            model: Model name (e.g., 'gpt-4o-mini')
            prompt_tokens: Input tokens
            completion_tokens: Output tokens
            cost_micros: Cost in micro-USD
            latency_ms: Latency in milliseconds
            status: SUCCEEDED or FAILED
            input_hash: Optional SHA256 hash of the input
            job_id: Job that made the call, if any
            store_item_id: Store item the call was about
            error_json: Optional error details if FAILED

        Returns:
            Created AICallLog instance
        """
        total_tokens = None
        if prompt_tokens is not None and completion_tokens is not None:
            total_tokens = prompt_tokens + completion_tokens

        call_log = AICallLog(
            project_id=project_id,
            job_id=job_id,
            store_item_id=store_item_id,
            call_type=call_type.value,
            provider=provider,
            model=model,
            input_hash=input_hash,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            cost_micros=cost_micros,
            latency_ms=latency_ms,
            status=status,
            error_json=error_json
        )

        db.add(call_log)
        db.flush()

        return call_log

    @staticmethod
    def log_failure(
        db: Session,
        project_id: UUID,
        call_type: AICallType,
        provider: str,
        model: str,
        error_json: dict,
        input_hash: Optional[str] = None,
        job_id: Optional[UUID] = None,
        store_item_id: Optional[UUID] = None,
    ) -> AICallLog:
        """
        Log failed AI call.

        Convenience wrapper around log_call() for failure cases.
        """
        return AICallLogger.log_call(
            db=db,
            project_id=project_id,
            call_type=call_type,
            provider=provider,
            model=model,
            prompt_tokens=None,
            completion_tokens=None,
            cost_micros=0,  # No cost for failed calls
            latency_ms=0,
            status=AICallStatus.FAILED,
            input_hash=input_hash,
            job_id=job_id,
            store_item_id=store_item_id,
            error_json=error_json
        )
