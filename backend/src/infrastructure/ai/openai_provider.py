"""
OpenAI Provider - Concrete implementation of LLMProviderPort for OpenAI.

Implements part matching and enrichment using OpenAI's GPT models in JSON mode.
"""

import json
import time
from typing import Any, Dict, Optional, Tuple

from openai import OpenAI, APIError, RateLimitError, APIConnectionError, APITimeoutError, AuthenticationError

from config import get_settings
from domain.ai.ports import (
    LLMProviderPort,
    LLMCallMetadata,
    PartMatchRequest,
    PartMatchResponse,
    PartEnrichmentResponse,
    SupersessionResponse,
    LLMTimeoutError,
    LLMRateLimitError,
    LLMAuthError,
    LLMServiceError,
    LLMInvalidResponseError
)
from .cost_calculator import CostCalculator


MATCH_SYSTEM_PROMPT = """You are an automotive parts cross-reference expert.
Given a store part, name the supplier catalog part number that is the same physical part
(OEM equivalent, aftermarket equivalent, or direct cross reference).
Return a JSON object with these fields:
- is_match: boolean, false if you cannot identify an equivalent
- suggested_match: string part number or null
- confidence: number between 0.0 and 1.0
- reasoning: short string

Return ONLY valid JSON, no markdown formatting."""

ENRICH_SYSTEM_PROMPT = """You are an automotive parts catalog expert.
Given a part, return a JSON object with these fields:
- category: string or null
- subcategory: string or null
- manufacturer: string or null
- confidence: number between 0.0 and 1.0

Return ONLY valid JSON, no markdown formatting."""

SUPERSESSION_SYSTEM_PROMPT = """You are an automotive parts expert.
Given a part that may be discontinued, decide whether it has been superseded or replaced
by a newer part number.
Return a JSON object with these fields:
- superseded: boolean, false if no supersession is known
- replacement_part: string part number or null
- manufacturer: line code of the replacement or null
- confidence: number between 0.0 and 1.0
- reasoning: short string

Return ONLY valid JSON, no markdown formatting."""


def _clamp_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    return min(1.0, max(0.0, confidence))


def _optional_text(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value).strip() or None


class OpenAIProvider(LLMProviderPort):
    """
    OpenAI implementation of LLMProviderPort.

    Uses OpenAI Python SDK (v1.x+) with structured output (JSON mode).
    Handles authentication, request formatting, response parsing, error handling.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, timeout: Optional[float] = None):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY setting)
            model: Model name (defaults to AI_MODEL setting)
            timeout: Request timeout in seconds (defaults to AI_REQUEST_TIMEOUT_SECONDS)

        Raises:
            ValueError: If API key is not provided
        """
        settings = get_settings()
        self.api_key = api_key or settings.OPENAI_API_KEY
        if not self.api_key:
            raise ValueError("OpenAI API key not provided. Set OPENAI_API_KEY environment variable.")

        self.client = OpenAI(api_key=self.api_key)
        self.model = model or settings.AI_MODEL
        self.timeout = timeout or settings.AI_REQUEST_TIMEOUT_SECONDS

    def match_part(self, request: PartMatchRequest) -> PartMatchResponse:
        parsed, metadata = self._make_completion_call(MATCH_SYSTEM_PROMPT, self._describe(request))

        suggested = _optional_text(parsed.get("suggested_match"))
        return PartMatchResponse(
            is_match=bool(parsed.get("is_match")) and suggested is not None,
            confidence=_clamp_confidence(parsed.get("confidence")),
            reasoning=str(parsed.get("reasoning") or ""),
            suggested_match=suggested,
            metadata=metadata,
        )

    def enrich_part(self, request: PartMatchRequest) -> PartEnrichmentResponse:
        parsed, metadata = self._make_completion_call(ENRICH_SYSTEM_PROMPT, self._describe(request))

        attributes = {
            key: parsed[key]
            for key in ("category", "subcategory", "manufacturer")
            if parsed.get(key) not in (None, "")
        }
        return PartEnrichmentResponse(
            attributes=attributes,
            confidence=_clamp_confidence(parsed.get("confidence")),
            metadata=metadata,
        )

    def find_supersession(self, request: PartMatchRequest) -> SupersessionResponse:
        parsed, metadata = self._make_completion_call(SUPERSESSION_SYSTEM_PROMPT, self._describe(request))

        replacement = _optional_text(parsed.get("replacement_part"))
        return SupersessionResponse(
            superseded=bool(parsed.get("superseded")) and replacement is not None,
            replacement_part=replacement,
            manufacturer=_optional_text(parsed.get("manufacturer")),
            confidence=_clamp_confidence(parsed.get("confidence")),
            reasoning=str(parsed.get("reasoning") or ""),
            metadata=metadata,
        )

    @staticmethod
    def _describe(request: PartMatchRequest) -> str:
        lines = [
            f"Part: {request.identifier}",
            f"Manufacturer/line code: {request.name or 'Unknown'}",
            f"Description: {request.description or 'N/A'}",
        ]
        for key, value in request.context.items():
            if value is not None:
                lines.append(f"{key}: {value}")
        return "\n".join(lines)

    def _make_completion_call(self, system_prompt: str, user_prompt: str) -> Tuple[Dict[str, Any], LLMCallMetadata]:
        """
        Internal method to make OpenAI completion call with error handling.

        Returns:
            (parsed JSON object, call metadata)

        Raises:
            LLMTimeoutError, LLMRateLimitError, LLMAuthError, LLMServiceError, LLMInvalidResponseError
        """
        start_time = time.perf_counter()

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt}
                ],
                response_format={"type": "json_object"},
                temperature=0.0,
                timeout=self.timeout
            )
        except APITimeoutError as e:
            raise LLMTimeoutError(f"OpenAI API timeout: {str(e)}")

        except RateLimitError as e:
            raise LLMRateLimitError(f"OpenAI rate limit exceeded: {str(e)}")

        except AuthenticationError as e:
            raise LLMAuthError(f"OpenAI authentication failed: {str(e)}")

        except (APIConnectionError, APIError) as e:
            raise LLMServiceError(f"OpenAI service error: {str(e)}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        raw_output = response.choices[0].message.content or ""

        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else None
        completion_tokens = usage.completion_tokens if usage else None

        cost_micros = CostCalculator.calculate_cost_micros(
            provider="openai",
            model=self.model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )

        metadata = LLMCallMetadata(
            provider="openai",
            model=self.model,
            tokens_in=prompt_tokens,
            tokens_out=completion_tokens,
            latency_ms=latency_ms,
            cost_micros=cost_micros,
            raw_output=raw_output,
        )

        try:
            parsed = json.loads(raw_output)
        except json.JSONDecodeError as e:
            raise LLMInvalidResponseError(f"Failed to parse LLM JSON output: {str(e)}")
        if not isinstance(parsed, dict):
            raise LLMInvalidResponseError("LLM JSON output is not an object")

        return parsed, metadata
