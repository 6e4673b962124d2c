#!/usr/bin/env python3
"""
Scoring Orchestrator - Resolves a single ScoreRequest end to end.

Flow:
1. Resolve profile and opportunity through the data source
2. Build the CacheKey and run pre-computation hooks
3. Return the cached result, or compute and write through
4. Run post-computation hooks (usage billing, audit)

Method dispatch:
- calculation: deterministic calculator
- generative: pipeline, falling back to the calculator on provider outage
- hybrid: both concurrently, blended; calculator alone if generation fails
"""

import asyncio
import dataclasses
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from core.cache.fingerprint import CacheKey
from core.cache.score_cache import FingerprintCache
from core.config_loader import ScoringConfig
from core.data_source import ScoringDataSource
from core.exceptions import InvalidScoreRequest, OpportunityNotFound, ProfileNotFound
from core.hooks import ScoringHook
from core.pipeline import PipelineFailure, ScoringPipeline
from core.scorer.calculator import ScoreCalculator
from core.scorer.models import (
    ALGORITHM_HYBRID,
    ALGORITHM_HYBRID_FALLBACK,
    ALGORITHM_LLM_FALLBACK,
    Opportunity,
    Profile,
    ScoreOutcome,
    ScoreRequest,
    ScoreResult,
    ScoringMethod,
    ScoringMode,
    round_half_up,
)

logger = logging.getLogger(__name__)


def blend_scores(generative: ScoreResult, calculated: ScoreResult, generative_weight: float,
                 calculation_weight: float) -> ScoreResult:
    """Combine a generative and a calculated result: ``w_g * G + w_c * C`` rounded half up."""
    overall = round_half_up(
        generative_weight * generative.overall_score + calculation_weight * calculated.overall_score
    )
    confidence = round_half_up(
        generative_weight * generative.confidence + calculation_weight * calculated.confidence
    )

    categories = dict(generative.categories)
    categories.update(calculated.categories)

    return ScoreResult(
        overall_score=overall,
        confidence=confidence,
        algorithm_version=ALGORITHM_HYBRID,
        categories=categories,
        semantic_analysis=generative.semantic_analysis,
        strategic_insights=generative.strategic_insights,
        recommendations=list(generative.recommendations),
        cost_units=generative.cost_units,
        processing_time_ms=generative.processing_time_ms,
        scoring_method=ScoringMethod.HYBRID.value,
        explanation=(
            f"Hybrid score {overall}: {generative_weight:.0%} generative ({generative.overall_score}) + "
            f"{calculation_weight:.0%} calculation ({calculated.overall_score})"
        ),
        win_probability=generative.win_probability,
    )


def _fallback_from(calculated: ScoreResult, version: str, method: ScoringMethod, failure: Exception) -> ScoreResult:
    return dataclasses.replace(
        calculated,
        algorithm_version=version,
        scoring_method=method.value,
        recommendations=list(calculated.recommendations) + [
            "Generative scoring unavailable; showing the deterministic score (degraded)"
        ],
        explanation=f"{calculated.explanation} Generative scoring failed: {failure}",
    )


class ScoringOrchestrator:
    """
    Single-request scoring.

    Usage:
        orchestrator = ScoringOrchestrator(data_source, calculator, pipeline, cache, hooks)
        result = await orchestrator.score(request)
    """

    def __init__(
        self,
        data_source: ScoringDataSource,
        calculator: ScoreCalculator,
        pipeline: ScoringPipeline,
        cache: FingerprintCache,
        hooks: Iterable[ScoringHook] = (),
        scoring_config: Optional[ScoringConfig] = None
    ):
        self.data_source = data_source
        self.calculator = calculator
        self.pipeline = pipeline
        self.cache = cache
        self.hooks: List[ScoringHook] = list(hooks)
        self.config = scoring_config or ScoringConfig()

    async def resolve_profile(self, organization_id: str, profile_id: Optional[str] = None) -> Profile:
        """
        Look up the explicit profile, or the organization's default.

        Raises:
            ProfileNotFound: no such profile, or it belongs to another organization
        """
        if profile_id:
            profile = await self.data_source.get_profile(profile_id)
            if profile is None or (profile.organization_id and profile.organization_id != organization_id):
                raise ProfileNotFound(profile_id=profile_id)
            return profile
        profile = await self.data_source.get_default_profile(organization_id)
        if profile is None:
            raise ProfileNotFound(organization_id=organization_id)
        return profile

    async def resolve_opportunity(self, request: ScoreRequest) -> Opportunity:
        if request.opportunity is not None:
            if not request.opportunity.id:
                return dataclasses.replace(request.opportunity, id=request.opportunity_id)
            return request.opportunity
        opportunity = await self.data_source.get_opportunity(request.opportunity_id)
        if opportunity is None:
            raise OpportunityNotFound(request.opportunity_id)
        return opportunity

    async def resolve_inputs(
        self,
        request: ScoreRequest,
        profile: Optional[Profile] = None
    ) -> Tuple[ScoreRequest, Profile, Opportunity]:
        """Validate the request and load its records. Raises input errors before any computation."""
        if not request.organization_id:
            raise InvalidScoreRequest("organization_id is required")
        if not request.opportunity_id:
            raise InvalidScoreRequest("opportunity_id is required")

        if profile is None:
            profile = await self.resolve_profile(request.organization_id, request.profile_id)
        opportunity = await self.resolve_opportunity(request)
        if request.profile_id != profile.id:
            request = dataclasses.replace(request, profile_id=profile.id)
        return request, profile, opportunity

    async def compute(
        self,
        method: ScoringMethod,
        mode: ScoringMode,
        opportunity: Opportunity,
        profile: Profile
    ) -> ScoreResult:
        """Compute a fresh result for the pair. No caching, no hooks."""
        if method == ScoringMethod.CALCULATION:
            return self.calculator.calculate(opportunity, profile)
        if method == ScoringMethod.GENERATIVE:
            return await self._generative(mode, opportunity, profile)
        return await self._hybrid(mode, opportunity, profile)

    async def _generative(self, mode: ScoringMode, opportunity: Opportunity, profile: Profile) -> ScoreResult:
        try:
            return await self.pipeline.run(opportunity, profile, mode)
        except PipelineFailure as e:
            if not e.is_outage:
                raise
            logger.warning(f"Generative scoring outage for opportunity {opportunity.id}, using calculator: {e}")
            calculated = self.calculator.calculate(opportunity, profile)
            return _fallback_from(calculated, ALGORITHM_LLM_FALLBACK, ScoringMethod.GENERATIVE, e)

    async def _hybrid(self, mode: ScoringMode, opportunity: Opportunity, profile: Profile) -> ScoreResult:
        generative_task = asyncio.ensure_future(self.pipeline.run(opportunity, profile, mode))
        try:
            calculated = self.calculator.calculate(opportunity, profile)
        except BaseException:
            generative_task.cancel()
            raise

        try:
            generative = await generative_task
        except PipelineFailure as e:
            logger.warning(f"Hybrid scoring lost its generative leg for opportunity {opportunity.id}: {e}")
            return _fallback_from(calculated, ALGORITHM_HYBRID_FALLBACK, ScoringMethod.HYBRID, e)

        blend = self.config.hybrid_blend
        return blend_scores(generative, calculated, blend.generative_weight, blend.calculation_weight)

    async def _run_hooks(self, phase: str, *args) -> None:
        for hook in self.hooks:
            try:
                await getattr(hook, phase)(*args)
            except Exception as e:
                logger.error(f"Scoring hook {hook.name}.{phase} failed: {e}", exc_info=True)

    async def resolve(
        self,
        request: ScoreRequest,
        bill: bool = True,
        profile: Optional[Profile] = None
    ) -> ScoreOutcome:
        """
        Resolve a request through the cache.

        Args:
            request: The score request
            bill: Emit a UsageEvent for a fresh computation. Batch callers pass
                False and bill the batch in aggregate.
            profile: Already-resolved profile, skipping the lookup

        Raises:
            ScoringInputError: unknown profile or opportunity, malformed request
            PipelineFailure: non-outage generative failure
        """
        request, profile, opportunity = await self.resolve_inputs(request, profile)
        key = CacheKey.build(profile, opportunity.id, request.method, request.mode)

        await self._run_hooks('before', request, key)

        async def compute() -> ScoreResult:
            return await self.compute(request.method, request.mode, opportunity, profile)

        result, from_cache = await self.cache.get_or_compute(
            key, compute, tags=key.tags, store=request.save_results
        )
        outcome = ScoreOutcome(result=result, from_cache=from_cache, cache_key=key.value, request=request)

        await self._run_hooks('after', request, outcome, bill)
        return outcome

    async def score(self, request: ScoreRequest) -> ScoreResult:
        outcome = await self.resolve(request)
        return outcome.result

    async def lookup_cached(
        self,
        organization_id: str,
        opportunity_ids: List[str],
        profile_id: Optional[str] = None,
        method: ScoringMethod = ScoringMethod.CALCULATION,
        mode: ScoringMode = ScoringMode.FAST
    ) -> Dict[str, Optional[ScoreOutcome]]:
        """
        Report which opportunities already have a cached score for the profile.

        Cache reads only: nothing is computed, no hooks run and nothing is
        billed. Opportunities are not looked up, so unknown ids are simply
        missing.

        Returns:
            Opportunity id -> cached outcome, or None when a computation is needed
        """
        profile = await self.resolve_profile(organization_id, profile_id)
        keys = [CacheKey.build(profile, opportunity_id, method, mode) for opportunity_id in opportunity_ids]
        results = await self.cache.get_many(keys)

        found: Dict[str, Optional[ScoreOutcome]] = {}
        for opportunity_id, key, result in zip(opportunity_ids, keys, results):
            request = ScoreRequest(
                opportunity_id=opportunity_id,
                organization_id=organization_id,
                profile_id=profile.id,
                method=method,
                mode=mode,
            )
            found[opportunity_id] = (
                ScoreOutcome(result=result, from_cache=True, cache_key=key.value, request=request)
                if result is not None else None
            )
        logger.debug(
            f"Cache check for profile {profile.id}: "
            f"{sum(1 for o in found.values() if o)}/{len(found)} already scored"
        )
        return found
