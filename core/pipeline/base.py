#!/usr/bin/env python3
"""
Pipeline Base - Shared primitives for generative scoring stages.

A stage builds one GenerationRequest, calls the generation capability once
under an outer timeout and parses the response with a strict parse step.
Generation failures propagate as typed errors; parse failures are replaced
by the stage's safe default and logged.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

from core.llm.interfaces import (
    GenerationRequest,
    GenerationResponse,
    ParseFailure,
    TextGenerationCapability,
    TimeoutFailure,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')
I = TypeVar('I')

DEFAULT_STAGE_TIMEOUT_SECONDS = 60.0


@dataclass
class CostEntry:
    stage: str
    model: str
    cost_units: float
    latency_ms: int


@dataclass
class CostLedger:
    """Cost and latency of the generation calls made by one or more stages."""
    entries: List[CostEntry] = field(default_factory=list)

    @classmethod
    def single(cls, stage: str, response: GenerationResponse) -> "CostLedger":
        return cls([CostEntry(stage, response.model, response.cost_units, response.latency_ms)])

    @property
    def cost_units(self) -> float:
        return round(sum(e.cost_units for e in self.entries), 6)

    @property
    def latency_ms(self) -> int:
        return sum(e.latency_ms for e in self.entries)

    @property
    def models(self) -> List[str]:
        return [e.model for e in self.entries]

    def merge(self, other: "CostLedger") -> "CostLedger":
        return CostLedger(self.entries + other.entries)


@dataclass
class ParseResult(Generic[T]):
    """Outcome of a strict parse step: either a value or an error message."""
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "ParseResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "ParseResult[T]":
        return cls(error=error)


@dataclass
class StageOutput(Generic[T]):
    value: T
    ledger: CostLedger = field(default_factory=CostLedger)
    # Set when the value is a safe default rather than the parsed response.
    degraded: bool = False
    error: Optional[str] = None


class PipelineStage(ABC, Generic[I, T]):
    """
    Base class for a single generative stage.

    Subclasses implement build_request, parse and on_parse_failure.
    """

    name = "stage"

    def __init__(
        self,
        provider: TextGenerationCapability,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout_seconds: float = DEFAULT_STAGE_TIMEOUT_SECONDS
    ):
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    def build_request(self, stage_input: I) -> GenerationRequest:
        pass

    @abstractmethod
    def parse(self, content: str, stage_input: I) -> ParseResult[T]:
        pass

    @abstractmethod
    def on_parse_failure(self, stage_input: I, error: str, content: str) -> T:
        """Safe default used when the response could not be parsed."""
        pass

    def _request(self, prompt: str, system_prompt: Optional[str], json_response: bool) -> GenerationRequest:
        return GenerationRequest(
            prompt=prompt,
            model=self.model,
            system_prompt=system_prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            json_response=json_response,
            purpose=self.name,
        )

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        try:
            return await asyncio.wait_for(self.provider.generate(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise TimeoutFailure(
                f"{self.name} generation exceeded {self.timeout_seconds}s", self.timeout_seconds
            ) from e

    async def run(self, stage_input: I) -> StageOutput[T]:
        """
        Run the stage once.

        Raises:
            GenerationFailure: when the generation call itself fails
        """
        request = self.build_request(stage_input)
        try:
            response = await self.generate(request)
        except ParseFailure as e:
            logger.warning(f"{self.name} returned an unusable completion, using safe default: {e}")
            # The provider may already have billed the empty answer
            ledger = CostLedger.single(self.name, e.response) if e.response is not None else CostLedger()
            return StageOutput(
                value=self.on_parse_failure(stage_input, str(e), e.raw),
                ledger=ledger,
                degraded=True,
                error=str(e),
            )
        ledger = CostLedger.single(self.name, response)

        parsed = self.parse(response.content, stage_input)
        if parsed.ok:
            return StageOutput(value=parsed.value, ledger=ledger)

        logger.warning(f"{self.name} response could not be parsed, using safe default: {parsed.error}")
        return StageOutput(
            value=self.on_parse_failure(stage_input, parsed.error, response.content),
            ledger=ledger,
            degraded=True,
            error=parsed.error,
        )
