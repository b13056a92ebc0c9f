"""AI domain layer - Ports and domain models for LLM providers"""

from .ports import (
    LLMProviderPort,
    LLMCallMetadata,
    PartMatchRequest,
    PartMatchResponse,
    PartEnrichmentResponse,
    SupersessionResponse,
    LLMError,
    LLMTimeoutError,
    LLMRateLimitError,
    LLMAuthError,
    LLMServiceError,
    LLMInvalidResponseError,
    AICallType,
)
from .budget_gate import BudgetGate, BudgetGateError
from .ai_call_logger import AICallLogger

__all__ = [
    "LLMProviderPort",
    "LLMCallMetadata",
    "PartMatchRequest",
    "PartMatchResponse",
    "PartEnrichmentResponse",
    "SupersessionResponse",
    "LLMError",
    "LLMTimeoutError",
    "LLMRateLimitError",
    "LLMAuthError",
    "LLMServiceError",
    "LLMInvalidResponseError",
    "AICallType",
    "BudgetGate",
    "BudgetGateError",
    "AICallLogger",
]
