"""LLM Module - Text generation capability and providers."""
from core.llm.interfaces import (
    GenerationFailure,
    GenerationRequest,
    GenerationResponse,
    ParseFailure,
    ProviderOutage,
    TextGenerationCapability,
    TimeoutFailure,
)
from core.llm.openai_service import OpenAIService

__all__ = [
    'GenerationFailure',
    'GenerationRequest',
    'GenerationResponse',
    'ParseFailure',
    'ProviderOutage',
    'TextGenerationCapability',
    'TimeoutFailure',
    'OpenAIService',
]
