#!/usr/bin/env python3
"""
Match score endpoints - score opportunities against a company profile.
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool

from core.app_context import AppContext
from core.cache.fingerprint import profile_tag
from core.exceptions import BatchTooLarge, InvalidScoreRequest
from core.scorer.models import Opportunity, ScoreOutcome, ScoreRequest, ScoringMethod, ScoringMode
from ..dependencies import get_app_context, get_organization_id, get_user_id
from ..exceptions import DispatcherUnavailableException
from ..models.requests import BulkCheckRequest, MatchScoreRequest
from ..models.responses import (
    BulkCheckResponse,
    CacheInvalidationResponse,
    CacheStatsResponse,
    MatchScoreBatchResponse,
    MatchScoreResult,
    TriggerResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/match-scores", tags=["match-scores"])

DISCONNECT_POLL_SECONDS = 0.5


def build_score_requests(
    body: MatchScoreRequest,
    organization_id: str,
    user_id: Optional[str]
) -> List[ScoreRequest]:
    """Turn the API body into one ScoreRequest per opportunity."""
    try:
        method = ScoringMethod.parse(body.method)
        mode = ScoringMode.parse(body.mode)
    except ValueError as e:
        raise InvalidScoreRequest(str(e))

    inline = body.opportunities or {}
    requests = []
    for opportunity_id in body.opportunity_ids:
        raw = inline.get(opportunity_id)
        opportunity = None
        if raw is not None:
            opportunity = Opportunity.from_dict({**raw, "id": raw.get("id") or opportunity_id})
        requests.append(ScoreRequest(
            opportunity_id=opportunity_id,
            organization_id=organization_id,
            user_id=user_id,
            profile_id=body.profile_id,
            method=method,
            mode=mode,
            opportunity=opportunity,
            save_results=body.save_results,
        ))
    return requests


def to_result(outcome: Optional[ScoreOutcome]) -> Optional[MatchScoreResult]:
    if outcome is None:
        return None
    result = outcome.result
    return MatchScoreResult(
        opportunityId=outcome.request.opportunity_id,
        score=result.overall_score,
        factors=result.factors(),
        algorithmVersion=result.algorithm_version,
        confidence=result.confidence,
        costUnits=result.cost_units,
        fromCache=outcome.from_cache,
        scoringMethod=result.scoring_method,
        recommendations=result.recommendations,
        explanation=result.explanation,
        winProbability=result.win_probability,
        strategicInsights=result.strategic_insights,
    )


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    """Set ``cancel_event`` when the client goes away."""
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.info(f"Client disconnected from {request.url.path}, cancelling scoring")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@router.post("", response_model=MatchScoreBatchResponse)
async def score_opportunities(
    body: MatchScoreRequest,
    request: Request,
    organization_id: str = Depends(get_organization_id),
    user_id: Optional[str] = Depends(get_user_id),
    ctx: AppContext = Depends(get_app_context)
):
    """
    Score opportunities for the caller's organization.

    Results come back in request order; an entry that failed is null and
    never affects its siblings. Cached scores are returned with
    fromCache=true and are not billed.
    """
    requests = build_score_requests(body, organization_id, user_id)

    cancel_event = asyncio.Event()
    watcher = asyncio.ensure_future(_watch_disconnect(request, cancel_event))
    try:
        batch = await ctx.batch_coordinator.score_batch(requests, cancel_event=cancel_event)
    finally:
        watcher.cancel()

    return MatchScoreBatchResponse(
        success=True,
        results=[to_result(outcome) for outcome in batch.outcomes],
        cacheHits=batch.cache_hits,
        cacheMisses=batch.cache_misses,
        processingTimeMs=batch.processing_time_ms,
        cancelled=batch.cancelled,
    )


@router.post("/bulk-check", response_model=BulkCheckResponse)
async def bulk_check(
    body: BulkCheckRequest,
    organization_id: str = Depends(get_organization_id),
    ctx: AppContext = Depends(get_app_context)
):
    """
    Split opportunities into those with a cached score and those without.

    Reads the score cache only; nothing is computed or billed.
    """
    try:
        method = ScoringMethod.parse(body.method)
        mode = ScoringMode.parse(body.mode)
    except ValueError as e:
        raise InvalidScoreRequest(str(e))
    if not body.opportunity_ids:
        raise InvalidScoreRequest("At least one opportunity id is required")
    limit = ctx.config.batch.max_bulk_check_size
    if len(body.opportunity_ids) > limit:
        raise BatchTooLarge(len(body.opportunity_ids), limit)

    found = await ctx.orchestrator.lookup_cached(
        organization_id, body.opportunity_ids, profile_id=body.profile_id, method=method, mode=mode
    )
    return BulkCheckResponse(
        success=True,
        existingScores={opp_id: to_result(outcome) for opp_id, outcome in found.items() if outcome},
        missingIds=[opp_id for opp_id, outcome in found.items() if outcome is None],
    )


@router.post("/trigger", response_model=TriggerResponse, status_code=202)
async def trigger_scoring(
    body: MatchScoreRequest,
    organization_id: str = Depends(get_organization_id),
    user_id: Optional[str] = Depends(get_user_id),
    ctx: AppContext = Depends(get_app_context)
):
    """
    Queue scoring in the background, one job per opportunity.

    Completion is announced on the score events channel.
    """
    if ctx.dispatcher is None:
        raise DispatcherUnavailableException("Background scoring is not configured")

    requests = build_score_requests(body, organization_id, user_id)
    if not requests:
        raise InvalidScoreRequest("Batch must contain at least one request")
    limit = ctx.config.batch.max_batch_size
    if len(requests) > limit:
        raise BatchTooLarge(len(requests), limit)

    # Fail fast on an unknown profile instead of in every job
    await ctx.orchestrator.resolve_profile(organization_id, body.profile_id)

    job_ids = await run_in_threadpool(ctx.dispatcher.dispatch_batch, requests)
    return TriggerResponse(success=True, jobIds=job_ids)


@router.delete("/cache", response_model=CacheInvalidationResponse)
async def invalidate_profile_cache(
    profile_id: str = Query(..., alias="profileId", description="Profile whose cached scores are dropped"),
    organization_id: str = Depends(get_organization_id),
    ctx: AppContext = Depends(get_app_context)
):
    """Drop every cached score computed for a profile."""
    profile = await ctx.orchestrator.resolve_profile(organization_id, profile_id)
    removed = await ctx.cache.invalidate_tag(profile_tag(profile.id))
    return CacheInvalidationResponse(success=True, profileId=profile.id, invalidated=removed)


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def get_cache_stats(ctx: AppContext = Depends(get_app_context)):
    """Get score cache statistics."""
    stats = await ctx.cache.get_cache_stats()
    return CacheStatsResponse(success=True, stats=stats)
