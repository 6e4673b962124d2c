#!/usr/bin/env python3
"""
Scoring Pipeline - Multi-step generative scoring.

Advanced mode runs every stage:
    REASONING -> DETAILED_SCORING -> VERIFICATION -> INSIGHT -> COMPILE -> COMPILED

Fast mode runs DETAILED_SCORING only, with an empty context, and compiles a
reduced result.

Generation failures in REASONING or DETAILED_SCORING abort the run with a
PipelineFailure. VERIFICATION and INSIGHT failures are absorbed: the
scoring passes through unverified and insights fall back to a placeholder.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional

from core.config_loader import CategoryWeights, LlmConfig
from core.llm.interfaces import (
    GenerationFailure,
    ProviderOutage,
    TextGenerationCapability,
    TimeoutFailure,
)
from core.pipeline.base import CostLedger, PipelineStage, StageOutput
from core.pipeline.defaults import (
    fast_mode_insights,
    minimal_context_analysis,
    passthrough_verification,
    placeholder_insights,
)
from core.pipeline.models import ContextAnalysis, DetailedScoring, StrategicInsights, VerifiedScoring
from core.pipeline.parsing import as_number, as_str_list
from core.pipeline.stages import (
    DetailedScoringStage,
    InsightInput,
    InsightStage,
    ReasoningInput,
    ReasoningStage,
    ScoringInput,
    VerificationStage,
)
from core.scorer.models import (
    ALGORITHM_LLM_ENHANCED,
    ALGORITHM_LLM_FAST,
    CategoryScore,
    Opportunity,
    Profile,
    ScoreResult,
    ScoringMethod,
    ScoringMode,
    round_half_up,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 75


class PipelineState(str, Enum):
    REASONING = "REASONING"
    DETAILED_SCORING = "DETAILED_SCORING"
    VERIFICATION = "VERIFICATION"
    INSIGHT = "INSIGHT"
    COMPILE = "COMPILE"
    COMPILED = "COMPILED"


class PipelineFailure(Exception):
    """A stage failure the pipeline could not absorb."""

    def __init__(self, stage: PipelineState, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Pipeline failed at {stage.value}: {cause}")

    @property
    def is_outage(self) -> bool:
        return isinstance(self.cause, (ProviderOutage, TimeoutFailure))


def go_no_go(score: int) -> str:
    if score >= 80:
        return "STRONG_GO"
    if score >= 70:
        return "GO"
    if score >= 50:
        return "CONDITIONAL_GO"
    return "NO_GO"


def _first_present(*values):
    """First value that is not None. A reported 0 is kept."""
    for value in values:
        if value is not None:
            return value
    return None


def compile_overall(value, categories: Dict[str, CategoryScore]) -> int:
    """
    Coerce an overall score to an int in [0, 100].

    Missing or non-finite values are recomputed from category contributions,
    and fall back to 50 when that is not possible either.
    """
    number = as_number(value)
    if number is None:
        contributions = [as_number(c.contribution) for c in categories.values()]
        contributions = [c for c in contributions if c is not None]
        number = sum(contributions) if contributions else 50.0
    return round_half_up(max(0.0, min(100.0, number)))


def compile_recommendations(score: int, insights: StrategicInsights) -> List[str]:
    decision = go_no_go(score)
    details = insights.go_no_go or {}
    recommendations = [f"{decision}: {score}% match score"]

    rationale = details.get('rationale') or details.get('decision_rationale')
    recommendations.append(str(rationale) if rationale else f"Based on {score}% match score")

    actions = as_str_list(details.get('immediate_actions'))
    recommendations.extend(actions or ["Review opportunity details within 48 hours"])

    for teaming in insights.teaming_recommendations:
        partner = teaming.get('partner_type') or 'partner'
        reason = teaming.get('reason')
        recommendations.append(f"Teaming: {partner} - {reason}" if reason else f"Teaming: {partner}")
    return recommendations


class ScoringPipeline:
    """
    Generative scoring over a TextGenerationCapability.

    Usage:
        pipeline = ScoringPipeline(provider, config.llm, config.scoring.category_weights)
        result = await pipeline.run(opportunity, profile, ScoringMode.ADVANCED)
    """

    def __init__(
        self,
        provider: TextGenerationCapability,
        llm_config: Optional[LlmConfig] = None,
        category_weights: Optional[CategoryWeights] = None
    ):
        llm_config = llm_config or LlmConfig()
        weights = (category_weights or CategoryWeights()).as_dict()
        timeout = llm_config.request_timeout_seconds

        self.reasoning = ReasoningStage(provider, llm_config.reasoning_model, 0.2, 4000, timeout)
        self.detailed_scoring = DetailedScoringStage(
            provider, llm_config.analysis_model, 0.1, 3000, timeout, weights=weights
        )
        self.verification = VerificationStage(provider, llm_config.verification_model, 0.3, 2000, timeout)
        self.insight = InsightStage(provider, llm_config.insight_model, 0.4, 2500, timeout)

    async def _required(self, state: PipelineState, stage: PipelineStage, stage_input) -> StageOutput:
        logger.debug(f"Pipeline entering {state.value}")
        try:
            return await stage.run(stage_input)
        except GenerationFailure as e:
            raise PipelineFailure(state, e) from e

    async def _optional(self, state: PipelineState, stage: PipelineStage, stage_input, fallback) -> StageOutput:
        logger.debug(f"Pipeline entering {state.value}")
        try:
            return await stage.run(stage_input)
        except GenerationFailure as e:
            logger.warning(f"{state.value} failed, continuing with safe default: {e}")
            return StageOutput(value=fallback(str(e)), degraded=True, error=str(e))

    async def run(self, opportunity: Opportunity, profile: Profile, mode: ScoringMode) -> ScoreResult:
        """
        Run the pipeline for one pair.

        Raises:
            PipelineFailure: when REASONING or DETAILED_SCORING generation fails
        """
        if mode == ScoringMode.FAST:
            context = minimal_context_analysis()
            scored = await self._required(
                PipelineState.DETAILED_SCORING, self.detailed_scoring,
                ScoringInput(opportunity, profile, context),
            )
            return self._compile_fast(scored.value, scored.ledger)

        reasoned = await self._required(
            PipelineState.REASONING, self.reasoning, ReasoningInput(opportunity, profile)
        )
        scored = await self._required(
            PipelineState.DETAILED_SCORING, self.detailed_scoring,
            ScoringInput(opportunity, profile, reasoned.value),
        )
        verified = await self._optional(
            PipelineState.VERIFICATION, self.verification, scored.value,
            lambda error: passthrough_verification(scored.value, note=f"Verification unavailable: {error}"),
        )
        insights = await self._optional(
            PipelineState.INSIGHT, self.insight,
            InsightInput(verified.value, opportunity, profile),
            lambda error: placeholder_insights(rationale=f"Strategic analysis unavailable: {error}"),
        )

        ledger = reasoned.ledger.merge(scored.ledger).merge(verified.ledger).merge(insights.ledger)
        return self._compile(reasoned.value, verified.value, insights.value, ledger)

    def _compile(
        self,
        context: ContextAnalysis,
        verified: VerifiedScoring,
        insights: StrategicInsights,
        ledger: CostLedger
    ) -> ScoreResult:
        logger.debug(f"Pipeline entering {PipelineState.COMPILE.value}")
        scoring = verified.scoring
        overall = compile_overall(scoring.overall_score, scoring.categories)
        confidence = _first_present(verified.final_confidence, scoring.confidence, DEFAULT_CONFIDENCE)

        semantic = context.to_dict()
        semantic['verification'] = {
            'notes': list(verified.verification_notes),
            'adjustments': list(verified.adjustments),
        }
        strategic = insights.to_dict()
        strategic['go_no_go'] = dict(strategic['go_no_go'], recommendation=go_no_go(overall))

        result = ScoreResult(
            overall_score=overall,
            confidence=confidence,
            algorithm_version=ALGORITHM_LLM_ENHANCED,
            categories=scoring.categories,
            semantic_analysis=semantic,
            strategic_insights=strategic,
            recommendations=compile_recommendations(overall, insights),
            cost_units=ledger.cost_units,
            processing_time_ms=ledger.latency_ms,
            scoring_method=ScoringMethod.GENERATIVE.value,
            explanation=scoring.reasoning or context.analysis or None,
            win_probability=insights.win_probability.get('percentage'),
        )
        logger.debug(f"Pipeline {PipelineState.COMPILED.value}: score={result.overall_score} models={ledger.models}")
        return result

    def _compile_fast(self, scoring: DetailedScoring, ledger: CostLedger) -> ScoreResult:
        overall = compile_overall(scoring.overall_score, scoring.categories)
        insights = fast_mode_insights(overall)
        strategic = insights.to_dict()
        strategic['go_no_go'] = {'recommendation': go_no_go(overall)}

        return ScoreResult(
            overall_score=overall,
            confidence=_first_present(scoring.confidence, DEFAULT_CONFIDENCE),
            algorithm_version=ALGORITHM_LLM_FAST,
            categories=scoring.categories,
            semantic_analysis=None,
            strategic_insights=strategic,
            recommendations=compile_recommendations(overall, insights),
            cost_units=ledger.cost_units,
            processing_time_ms=ledger.latency_ms,
            scoring_method=ScoringMethod.GENERATIVE.value,
            explanation=scoring.reasoning or None,
            win_probability=insights.win_probability['percentage'],
        )
