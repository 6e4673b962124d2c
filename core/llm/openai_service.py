"""
OpenAI Service - Text generation using an OpenAI-compatible API.

Works against OpenAI itself or any compatible gateway (OpenRouter, Ollama)
through ``base_url``. Transport errors that never produced a generation
(rate limits, dropped connections, 5xx) are retried with tenacity; anything
left over is mapped to the typed failures in core.llm.interfaces.
"""
from typing import Dict, Optional
import logging
import os
import re
import time

import openai
from openai import AsyncOpenAI
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity import RetryCallState
from core.llm.interfaces import (
    GenerationFailure,
    GenerationRequest,
    GenerationResponse,
    ParseFailure,
    ProviderOutage,
    TextGenerationCapability,
    TimeoutFailure,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Retry helpers
# ---------------------------------------------------------------------------

_RETRYABLE_ERRORS = (
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.InternalServerError,
)


def _is_retryable(exc: BaseException) -> bool:
    """Return True for transient errors that are worth retrying."""
    if isinstance(exc, openai.RateLimitError) and _is_quota_error(exc):
        return False
    return isinstance(exc, _RETRYABLE_ERRORS)


def _is_quota_error(exc: openai.RateLimitError) -> bool:
    """A 429 caused by an exhausted quota will not clear by waiting."""
    code = getattr(exc, "code", None) or ""
    return "quota" in str(code).lower() or "insufficient_quota" in str(exc).lower()


def _log_retry(retry_state: RetryCallState) -> None:
    """Log a warning before each retry sleep, including Retry-After info."""
    exc = retry_state.outcome.exception()
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    if isinstance(exc, openai.RateLimitError):
        logger.warning(
            "Rate limit hit (attempt %s). Waiting %.1fs before retry. Details: %s",
            retry_state.attempt_number, wait, exc,
        )
    else:
        logger.warning(
            "Transient API error (attempt %s). Waiting %.1fs before retry. Details: %s",
            retry_state.attempt_number, wait, exc,
        )


def _parse_reset_duration(value: str) -> float:
    """Parse a reset-timer header value like '1s', '500ms', '1m30s' into seconds."""
    total = 0.0
    for amount, unit in re.findall(r"([\d.]+)(ms|s|m|h)", value):
        a = float(amount)
        if unit == "ms":
            total += a / 1000
        elif unit == "s":
            total += a
        elif unit == "m":
            total += a * 60
        else:  # h
            total += a * 3600
    return total


def _wait_from_rate_limit_headers(exc: openai.RateLimitError) -> float:
    """Extract the longest declared wait from rate-limit response headers.

    Reads ``retry-after`` (plain seconds) and the ``x-ratelimit-reset-requests``
    / ``x-ratelimit-reset-tokens`` durations, taking the maximum.

    Returns 0.0 if no usable header is present.
    """
    response = getattr(exc, "response", None)
    if response is None:
        return 0.0
    headers = response.headers
    candidates = []

    retry_after = headers.get("retry-after", "")
    if retry_after:
        try:
            candidates.append(float(retry_after))
        except ValueError:
            pass

    for header in ("x-ratelimit-reset-requests", "x-ratelimit-reset-tokens"):
        parsed = _parse_reset_duration(headers.get(header, ""))
        if parsed > 0:
            candidates.append(parsed)

    return max(candidates) if candidates else 0.0


def _wait_respecting_retry_after(retry_state: RetryCallState) -> float:
    """Return how long tenacity should sleep before the next attempt.

    Interactive scoring sits behind this, so waits are capped well below the
    per-call timeout.
    """
    exc = retry_state.outcome.exception()
    if isinstance(exc, openai.RateLimitError):
        wait = _wait_from_rate_limit_headers(exc)
        if wait > 0:
            wait = min(wait, 20)
            logger.info("Rate limit headers indicate %.1fs wait.", wait)
            return wait

    # Fallback: exponential backoff 1 -> 2 -> 4 ... capped at 10s
    exp = wait_exponential(multiplier=1, min=1, max=10)
    return exp(retry_state)


def _llm_retry(attempts: int):
    """Return a tenacity @retry decorator for LLM API calls."""
    return retry(
        retry=retry_if_exception(_is_retryable),
        wait=_wait_respecting_retry_after,
        stop=stop_after_attempt(max(1, attempts)),
        before_sleep=_log_retry,
        reraise=True,
    )


def _to_generation_failure(exc: openai.OpenAIError) -> GenerationFailure:
    """Map an openai client error onto the typed failure hierarchy."""
    if isinstance(exc, openai.APITimeoutError):
        return TimeoutFailure(f"Generation request timed out: {exc}")
    if isinstance(exc, openai.APIConnectionError):
        return ProviderOutage(f"Could not reach generation provider: {exc}", ProviderOutage.NETWORK_ERROR)
    if isinstance(exc, openai.RateLimitError):
        if _is_quota_error(exc):
            return ProviderOutage(f"Generation quota exceeded: {exc}", ProviderOutage.QUOTA_EXCEEDED)
        return ProviderOutage(f"Generation provider rate limited: {exc}", ProviderOutage.ALL_PROVIDERS_FAILED)
    if isinstance(exc, (openai.InternalServerError, openai.AuthenticationError, openai.PermissionDeniedError)):
        return ProviderOutage(f"Generation provider unavailable: {exc}", ProviderOutage.ALL_PROVIDERS_FAILED)
    return GenerationFailure(f"Generation request rejected: {exc}")


class OpenAIService(TextGenerationCapability):
    """
    OpenAI-compatible generation provider.

    Cost units are computed from token usage with a per-model rate table.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: float = 60.0,
        max_attempts: int = 3,
        cost_per_1k_tokens: Optional[Dict[str, float]] = None,
        default_cost_per_1k: float = 0.002,
        client: Optional[AsyncOpenAI] = None
    ):
        if client is None:
            client_kwargs = {'timeout': timeout_seconds, 'max_retries': 0}
            # Without a key every call fails with AuthenticationError, which maps to ProviderOutage.
            client_kwargs['api_key'] = api_key or os.environ.get('OPENAI_API_KEY') or 'unset'
            if base_url:
                client_kwargs['base_url'] = base_url
            client = AsyncOpenAI(**client_kwargs)

        self.client = client
        self.max_attempts = max_attempts
        self.cost_per_1k_tokens = cost_per_1k_tokens or {}
        self.default_cost_per_1k = default_cost_per_1k

    @classmethod
    def from_config(cls, llm_config) -> "OpenAIService":
        return cls(
            api_key=llm_config.api_key,
            base_url=llm_config.base_url,
            timeout_seconds=llm_config.request_timeout_seconds,
            max_attempts=llm_config.max_transport_attempts,
            cost_per_1k_tokens=llm_config.cost_per_1k_tokens,
            default_cost_per_1k=llm_config.default_cost_per_1k,
        )

    def cost_for(self, model: str, total_tokens: int) -> float:
        rate = self.cost_per_1k_tokens.get(model, self.default_cost_per_1k)
        return round(total_tokens / 1000.0 * rate, 6)

    async def _create(self, request: GenerationRequest):
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        kwargs = {}
        if request.json_response:
            kwargs['response_format'] = {"type": "json_object"}

        return await self.client.chat.completions.create(
            model=request.model,
            messages=messages,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            **kwargs,
        )

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        started = time.monotonic()
        try:
            response = await _llm_retry(self.max_attempts)(self._create)(request)
        except openai.OpenAIError as e:
            failure = _to_generation_failure(e)
            logger.warning(f"{request.purpose} generation failed ({type(failure).__name__}): {e}")
            raise failure from e

        latency_ms = int((time.monotonic() - started) * 1000)

        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        model = getattr(response, "model", None) or request.model

        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = getattr(message, "content", None) or ""
        generation = GenerationResponse(
            content=content,
            model=model,
            cost_units=self.cost_for(request.model, prompt_tokens + completion_tokens),
            latency_ms=latency_ms,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
        if message is None:
            raise ParseFailure("Malformed completion payload: no message", response=generation)
        if not content.strip():
            raise ParseFailure("Provider returned an empty completion", raw=content, response=generation)

        logger.debug(
            f"{request.purpose} generation by {model}: {prompt_tokens}+{completion_tokens} tokens in {latency_ms}ms"
        )
        return generation
