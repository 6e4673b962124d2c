#!/usr/bin/env python3
"""
Background scoring task - executed by RQ workers.

Each job scores one opportunity through the orchestrator, then publishes
``score.completed`` or ``score.failed``. Retryable failures are re-raised
so RQ applies the job's Retry policy; input errors are final.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from redis import Redis

from core.app_context import AppContext
from core.config_loader import AppConfig, load_config
from core.exceptions import ScoringInputError
from core.scorer.models import ScoreRequest
from dispatch.events import EventPublisher, completed_event, failed_event

logger = logging.getLogger(__name__)

# Loaded once per worker process
_config: Optional[AppConfig] = None


def _get_config() -> AppConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: AppConfig) -> None:
    """Use ``config`` for every job this process runs."""
    global _config
    _config = config


def is_retryable(exc: BaseException) -> bool:
    """Input errors will fail the same way on every attempt."""
    return not isinstance(exc, ScoringInputError)


async def _score(request: ScoreRequest, config: AppConfig):
    # Async Redis clients are bound to the event loop, so each job builds its own context.
    ctx = await AppContext.create(config)
    try:
        return await ctx.orchestrator.resolve(request)
    finally:
        await ctx.close()


def process_score_task(payload: Dict[str, Any], config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """
    Score one request (called by RQ worker).

    Args:
        payload: ``ScoreRequest.to_event_payload()``
        config: Optional config override, defaults to config.yaml

    Returns:
        The published event data
    """
    config = config or _get_config()
    request = ScoreRequest.from_event_payload(payload)
    publisher = EventPublisher(
        Redis.from_url(config.queue_redis_url),
        config.dispatcher.events_channel,
    )

    logger.info(f"Processing background score for opportunity {request.opportunity_id} "
                f"(org {request.organization_id}, {request.method.value}/{request.mode.value})")
    started = time.monotonic()
    try:
        outcome = asyncio.run(_score(request, config))
    except Exception as e:
        retryable = is_retryable(e)
        logger.error(f"Background score for opportunity {request.opportunity_id} failed "
                     f"(retryable={retryable}): {e}", exc_info=True)
        event = failed_event(request, str(e), retryable)
        publisher.publish(event)
        if retryable:
            raise
        return event["data"]

    processing_time_ms = int((time.monotonic() - started) * 1000)
    event = completed_event(request, outcome, processing_time_ms)
    publisher.publish(event)
    logger.info(f"Background score {outcome.result.overall_score} for opportunity {request.opportunity_id} "
                f"in {processing_time_ms}ms (cached={outcome.from_cache})")
    return event["data"]
