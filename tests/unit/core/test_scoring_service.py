"""
Tests for ScoringOrchestrator: cache idempotence, method dispatch and fallbacks.
"""
import pytest

from core.exceptions import InvalidScoreRequest, OpportunityNotFound, ProfileNotFound
from core.hooks import ScoringHook
from core.llm.interfaces import GenerationFailure, ProviderOutage
from core.pipeline import PipelineFailure
from core.scorer.models import (
    ALGORITHM_CALCULATION,
    ALGORITHM_HYBRID,
    ALGORITHM_HYBRID_FALLBACK,
    ALGORITHM_LLM_FALLBACK,
    ALGORITHM_LLM_FAST,
    Opportunity,
    ScoreRequest,
    ScoreResult,
    ScoringMethod,
    ScoringMode,
)
from core.scoring_service import blend_scores


def _request(opportunity_id="opp-1", **kwargs) -> ScoreRequest:
    kwargs.setdefault("organization_id", "org-acme")
    kwargs.setdefault("user_id", "user-1")
    return ScoreRequest(opportunity_id=opportunity_id, **kwargs)


class TestCalculationScoring:

    @pytest.mark.asyncio
    async def test_second_request_is_served_from_cache_and_billed_once(self, app_context):
        orchestrator = app_context.orchestrator

        first = await orchestrator.resolve(_request())
        second = await orchestrator.resolve(_request())

        assert first.from_cache is False
        assert second.from_cache is True
        assert first.result.overall_score == second.result.overall_score == 100
        assert first.result.algorithm_version == ALGORITHM_CALCULATION
        assert first.cache_key == second.cache_key

        events = app_context.usage_recorder.events
        assert len(events) == 1
        assert events[0].quantity == 1
        assert events[0].organization_id == "org-acme"
        assert events[0].metadata["opportunity_id"] == "opp-1"
        assert events[0].metadata["resource_subtype"] == "individual_calculation"

    @pytest.mark.asyncio
    async def test_default_profile_is_filled_in(self, app_context):
        outcome = await app_context.orchestrator.resolve(_request())

        assert outcome.request.profile_id == "profile-acme"

    @pytest.mark.asyncio
    async def test_method_and_mode_get_separate_entries(self, app_context):
        orchestrator = app_context.orchestrator

        await orchestrator.resolve(_request())
        other = await orchestrator.resolve(_request(method=ScoringMethod.GENERATIVE))

        assert other.from_cache is False
        assert len(app_context.usage_recorder.events) == 2

    @pytest.mark.asyncio
    async def test_save_results_false_does_not_populate_cache(self, app_context, fake_redis):
        first = await app_context.orchestrator.resolve(_request(save_results=False))
        second = await app_context.orchestrator.resolve(_request())

        assert first.from_cache is False
        assert second.from_cache is False

    @pytest.mark.asyncio
    async def test_score_returns_the_result(self, app_context):
        result = await app_context.orchestrator.score(_request("opp-2"))

        assert isinstance(result, ScoreResult)
        assert result.overall_score == 40


class TestInputErrors:

    @pytest.mark.asyncio
    async def test_unknown_opportunity(self, app_context):
        with pytest.raises(OpportunityNotFound):
            await app_context.orchestrator.resolve(_request("opp-missing"))

    @pytest.mark.asyncio
    async def test_profile_of_another_organization(self, app_context):
        app_context.data_source.add_profile({"id": "profile-other", "organizationId": "org-other"})

        with pytest.raises(ProfileNotFound):
            await app_context.orchestrator.resolve(_request(profile_id="profile-other"))

    @pytest.mark.asyncio
    async def test_organization_without_default_profile(self, app_context):
        with pytest.raises(ProfileNotFound):
            await app_context.orchestrator.resolve(_request(organization_id="org-nobody"))

    @pytest.mark.asyncio
    async def test_missing_opportunity_id(self, app_context):
        with pytest.raises(InvalidScoreRequest):
            await app_context.orchestrator.resolve(_request(""))

    @pytest.mark.asyncio
    async def test_input_errors_are_not_billed(self, app_context):
        with pytest.raises(OpportunityNotFound):
            await app_context.orchestrator.resolve(_request("opp-missing"))

        assert app_context.usage_recorder.events == []

    @pytest.mark.asyncio
    async def test_inline_opportunity_skips_the_lookup(self, app_context):
        inline = Opportunity.from_dict({
            "title": "Inline pilot",
            "agency": "Department of Veterans Affairs",
            "description": "Cloud migration pilot delivered with DevSecOps tooling",
            "naicsCodes": ["541512"],
            "estimatedValue": 3000000,
            "setAsideType": "8(a)",
            "securityClearanceRequired": "SECRET",
            "placeOfPerformance": {"state": "VA", "city": "Reston"},
        })

        outcome = await app_context.orchestrator.resolve(_request("inline-1", opportunity=inline))

        assert outcome.result.overall_score == 100
        assert "inline-1" in outcome.cache_key


class TestGenerativeScoring:

    @pytest.mark.asyncio
    async def test_fast_generative(self, app_context, provider):
        outcome = await app_context.orchestrator.resolve(_request(method=ScoringMethod.GENERATIVE))

        assert outcome.result.algorithm_version == ALGORITHM_LLM_FAST
        assert outcome.result.overall_score == 75
        assert provider.purposes() == ["detailed_scoring"]
        assert app_context.usage_recorder.events[0].metadata["cost_units"] == pytest.approx(0.01)

    @pytest.mark.asyncio
    async def test_outage_falls_back_to_calculation(self, app_context, provider):
        provider.responses["detailed_scoring"] = ProviderOutage("gateway down")

        outcome = await app_context.orchestrator.resolve(_request(method=ScoringMethod.GENERATIVE))

        result = outcome.result
        assert result.algorithm_version == ALGORITHM_LLM_FALLBACK
        assert result.is_fallback is True
        assert result.overall_score == 100
        assert result.scoring_method == ScoringMethod.GENERATIVE.value
        assert "degraded" in result.recommendations[-1]

    @pytest.mark.asyncio
    async def test_non_outage_failure_propagates(self, app_context, provider, fake_redis):
        provider.responses["detailed_scoring"] = GenerationFailure("bad request")

        with pytest.raises(PipelineFailure):
            await app_context.orchestrator.resolve(_request(method=ScoringMethod.GENERATIVE))

        assert fake_redis.score_keys() == []
        assert app_context.usage_recorder.events == []


class TestHybridScoring:

    @pytest.mark.asyncio
    async def test_hybrid_blends_both_results(self, app_context):
        outcome = await app_context.orchestrator.resolve(_request(method=ScoringMethod.HYBRID))

        result = outcome.result
        # 0.7 * 75 + 0.3 * 100 = 82.5, rounded half up
        assert result.overall_score == 83
        assert result.confidence == 86
        assert result.algorithm_version == ALGORITHM_HYBRID
        assert "classification" in result.categories
        assert "past_performance" in result.categories

    @pytest.mark.asyncio
    async def test_hybrid_keeps_calculation_when_generation_fails(self, app_context, provider):
        provider.responses["detailed_scoring"] = GenerationFailure("bad request")

        outcome = await app_context.orchestrator.resolve(
            _request(method=ScoringMethod.HYBRID, mode=ScoringMode.FAST)
        )

        assert outcome.result.algorithm_version == ALGORITHM_HYBRID_FALLBACK
        assert outcome.result.overall_score == 100

    def test_blend_scores(self):
        generative = ScoreResult(overall_score=60, confidence=70, algorithm_version=ALGORITHM_LLM_FAST,
                                 cost_units=0.02)
        calculated = ScoreResult(overall_score=40, confidence=90, algorithm_version=ALGORITHM_CALCULATION)

        blended = blend_scores(generative, calculated, 0.5, 0.5)

        assert blended.overall_score == 50
        assert blended.confidence == 80
        assert blended.cost_units == 0.02
        assert "50% generative (60)" in blended.explanation

    @pytest.mark.parametrize("generative_score,calculated_score,expected", [
        (0, 15, 5),
        (0, 35, 11),
        (75, 100, 83),
        (1, 0, 1),
    ])
    def test_blend_rounds_half_up(self, generative_score, calculated_score, expected):
        generative = ScoreResult(overall_score=generative_score, confidence=75, algorithm_version=ALGORITHM_LLM_FAST)
        calculated = ScoreResult(overall_score=calculated_score, confidence=75,
                                 algorithm_version=ALGORITHM_CALCULATION)

        blended = blend_scores(generative, calculated, 0.7, 0.3)

        assert blended.overall_score == expected


class TestCacheLookup:

    @pytest.mark.asyncio
    async def test_lookup_reads_without_computing_or_billing(self, app_context, fake_redis):
        orchestrator = app_context.orchestrator
        scored = await orchestrator.resolve(_request())
        events_before = list(app_context.usage_recorder.events)
        keys_before = fake_redis.score_keys()

        found = await orchestrator.lookup_cached("org-acme", ["opp-1", "opp-2"])

        assert found["opp-1"].from_cache is True
        assert found["opp-1"].cache_key == scored.cache_key
        assert found["opp-1"].result.overall_score == 100
        assert found["opp-2"] is None
        assert app_context.usage_recorder.events == events_before
        assert fake_redis.score_keys() == keys_before

    @pytest.mark.asyncio
    async def test_lookup_with_unknown_profile(self, app_context):
        with pytest.raises(ProfileNotFound):
            await app_context.orchestrator.lookup_cached("org-acme", ["opp-1"], profile_id="profile-missing")


class TestHooks:

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_fail_scoring(self, app_context):
        class BrokenHook(ScoringHook):
            name = "broken"

            async def after(self, request, outcome, billed):
                raise RuntimeError("hook exploded")

        app_context.orchestrator.hooks.insert(0, BrokenHook())

        outcome = await app_context.orchestrator.resolve(_request())

        assert outcome.result.overall_score == 100
        assert len(app_context.usage_recorder.events) == 1
