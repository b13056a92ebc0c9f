"""
LLM Provider Port - Abstract interface for LLM providers.

Hexagonal Architecture: This is a domain port that infrastructure adapters implement.
Matching logic depends on this port, not on concrete implementations (OpenAI, etc).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class AICallType(str, Enum):
    """What an ai_call_log row was spent on"""
    LLM_MATCH_PART = "LLM_MATCH_PART"
    LLM_ENRICH_PART = "LLM_ENRICH_PART"
    LLM_SUPERSESSION = "LLM_SUPERSESSION"


@dataclass
class LLMCallMetadata:
    """
    Metadata for one provider call, used for cost tracking and logging.

    Attributes:
        provider: Provider name (e.g., 'openai')
        model: Model name (e.g., 'gpt-4o-mini')
        tokens_in: Input tokens used (None if provider doesn't report)
        tokens_out: Output tokens used (None if provider doesn't report)
        latency_ms: Latency in milliseconds
        cost_micros: Cost in micros (1 micro = 1/1,000,000 USD)
        raw_output: Raw string response from the model
    """
    provider: str
    model: str
    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None
    latency_ms: int = 0
    cost_micros: int = 0
    raw_output: str = ""


@dataclass
class PartMatchRequest:
    """
    Request to identify the supplier-catalog equivalent of a store part.

    Attributes:
        identifier: Raw store part number
        name: Line code or short name, if known
        description: Free-text description
        context: Extra hints (category, cost) passed through to the prompt
    """
    identifier: str
    name: Optional[str] = None
    description: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PartMatchResponse:
    """
    Parsed model answer for a part match request.

    The answer is untrusted input: callers decide what confidence means.
    """
    is_match: bool
    confidence: float
    reasoning: str
    suggested_match: Optional[str]
    metadata: LLMCallMetadata


@dataclass
class PartEnrichmentResponse:
    """
    Parsed model answer for an enrichment request.

    Attributes:
        attributes: Field name -> value (e.g. category, subcategory, manufacturer)
        confidence: Model's overall confidence in [0, 1]
        metadata: Call metadata
    """
    attributes: Dict[str, Any]
    confidence: float
    metadata: LLMCallMetadata


@dataclass
class SupersessionResponse:
    """
    Parsed model answer for a supersession lookup.

    Attributes:
        superseded: Whether the model knows a replacement for the part
        replacement_part: Replacement part number, if superseded
        manufacturer: Line code of the replacement, if the model named one
        confidence: Model's confidence in [0, 1]
        reasoning: Short justification
        metadata: Call metadata
    """
    superseded: bool
    replacement_part: Optional[str]
    manufacturer: Optional[str]
    confidence: float
    reasoning: str
    metadata: LLMCallMetadata


class LLMProviderPort(ABC):
    """
    Abstract interface for LLM providers.

    Implementations must handle:
    - API authentication
    - Request formatting for provider
    - Response parsing into the dataclasses above
    - Error mapping to the LLMError hierarchy
    - Token/cost tracking
    """

    @abstractmethod
    def match_part(self, request: PartMatchRequest) -> PartMatchResponse:
        """
        Ask the model for the supplier part number equivalent to a store part.

        Raises:
            LLMTimeoutError: Request timed out
            LLMRateLimitError: Rate limit exceeded
            LLMAuthError: Authentication failed
            LLMServiceError: Provider service unavailable
            LLMInvalidResponseError: Output was not the expected JSON
        """
        pass

    @abstractmethod
    def enrich_part(self, request: PartMatchRequest) -> PartEnrichmentResponse:
        """
        Ask the model for catalog attributes of a part.

        Raises:
            LLMTimeoutError: Request timed out
            LLMRateLimitError: Rate limit exceeded
            LLMAuthError: Authentication failed
            LLMServiceError: Provider service unavailable
            LLMInvalidResponseError: Output was not the expected JSON
        """
        pass

    @abstractmethod
    def find_supersession(self, request: PartMatchRequest) -> SupersessionResponse:
        """
        Ask the model whether a (possibly discontinued) part was superseded.

        Raises:
            LLMTimeoutError: Request timed out
            LLMRateLimitError: Rate limit exceeded
            LLMAuthError: Authentication failed
            LLMServiceError: Provider service unavailable
            LLMInvalidResponseError: Output was not the expected JSON
        """
        pass


# Custom exceptions for LLM operations
class LLMError(Exception):
    """Base exception for LLM operations"""
    pass


class LLMTimeoutError(LLMError):
    """LLM request timed out"""
    pass


class LLMRateLimitError(LLMError):
    """Rate limit exceeded"""
    pass


class LLMAuthError(LLMError):
    """Authentication failed"""
    pass


class LLMServiceError(LLMError):
    """Provider service unavailable or returned error"""
    pass


class LLMInvalidResponseError(LLMError):
    """Provider returned invalid/unexpected response"""
    pass
