"""
Text Generation Interface - Abstract base for generation providers.

This module defines the capability the scoring pipeline depends on, the
request/response records exchanged with it, and the typed failures a
provider may raise.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class GenerationRequest:
    prompt: str
    model: str
    system_prompt: Optional[str] = None
    temperature: float = 0.2
    max_tokens: int = 2000
    json_response: bool = False
    # Label used in logs and cost accounting (e.g. "reasoning").
    purpose: str = "generation"


@dataclass
class GenerationResponse:
    content: str
    model: str
    cost_units: float = 0.0
    latency_ms: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0


class GenerationFailure(Exception):
    """Base class for every failure a generation call or its parse step can produce."""
    pass


class ProviderOutage(GenerationFailure):
    """
    The provider could not produce a generation at all.

    ``code`` is one of ALL_PROVIDERS_FAILED, QUOTA_EXCEEDED, NETWORK_ERROR.
    """

    ALL_PROVIDERS_FAILED = "ALL_PROVIDERS_FAILED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    NETWORK_ERROR = "NETWORK_ERROR"

    def __init__(self, message: str, code: str = ALL_PROVIDERS_FAILED):
        self.code = code
        super().__init__(message)


class TimeoutFailure(GenerationFailure):
    """The generation call did not complete within its time budget."""

    def __init__(self, message: str, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = timeout_seconds
        super().__init__(message)


class ParseFailure(GenerationFailure):
    """
    The provider answered but the content could not be interpreted.

    ``response`` carries the cost and latency of the answer when the provider
    billed it, so callers can still account for the spend.
    """

    def __init__(self, message: str, raw: str = "", response: Optional[GenerationResponse] = None):
        self.raw = raw
        self.response = response
        super().__init__(message)


class TextGenerationCapability(ABC):
    """
    Abstract Interface for text generation providers (OpenAI-compatible gateways,
    local models, test fakes).
    """

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """
        Run one generation.

        Raises:
            ProviderOutage: provider unavailable, quota exhausted, network down
            TimeoutFailure: the call exceeded its time budget
        """
        pass
