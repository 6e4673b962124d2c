#!/usr/bin/env python3
"""
Detailed Scoring Stage - Structured four-category scoring.

Categories and their default weights:
- past_performance (35)
- technical_capability (35)
- strategic_fit_relationships (15)
- credibility_market_presence (15)

The configured weights always win over weights reported by the model.
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from core.llm.interfaces import GenerationRequest, TextGenerationCapability
from core.llm.system_prompts import SCORING_SYSTEM_PROMPT
from core.pipeline.base import DEFAULT_STAGE_TIMEOUT_SECONDS, ParseResult, PipelineStage
from core.pipeline.defaults import NEUTRAL_CATEGORY_SCORE, neutral_scoring
from core.pipeline.models import ContextAnalysis, DetailedScoring
from core.pipeline.parsing import as_score, as_str_list, extract_json_object, snake_keys
from core.scorer.models import CategoryScore, Opportunity, Profile

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_WEIGHTS = {
    'past_performance': 35.0,
    'technical_capability': 35.0,
    'strategic_fit_relationships': 15.0,
    'credibility_market_presence': 15.0,
}


@dataclass
class ScoringInput:
    opportunity: Opportunity
    profile: Profile
    context: ContextAnalysis


def recompute_overall(categories: Dict[str, CategoryScore]) -> float:
    return round(sum(c.contribution for c in categories.values()), 2)


class DetailedScoringStage(PipelineStage[ScoringInput, DetailedScoring]):

    name = "detailed_scoring"

    def __init__(
        self,
        provider: TextGenerationCapability,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout_seconds: float = DEFAULT_STAGE_TIMEOUT_SECONDS,
        weights: Optional[Dict[str, float]] = None
    ):
        super().__init__(provider, model, temperature, max_tokens, timeout_seconds)
        self.weights = dict(weights or DEFAULT_CATEGORY_WEIGHTS)

    def build_request(self, stage_input: ScoringInput) -> GenerationRequest:
        framework = {name: {'weight': weight} for name, weight in self.weights.items()}
        prompt = (
            f"FRAMEWORK: {json.dumps(framework)}\n"
            f"CONTEXT: {json.dumps(stage_input.context.to_dict(), default=str)}\n"
            f"OPPORTUNITY: {json.dumps(stage_input.opportunity.prompt_view(), default=str)}\n"
            f"CONTRACTOR: {json.dumps(stage_input.profile.prompt_view(), default=str)}\n\n"
            "Score each category 0-100 with specific evidence from the contractor profile "
            "versus the opportunity requirements. Identify every significant gap."
        )
        return self._request(prompt, SCORING_SYSTEM_PROMPT, json_response=True)

    def _category(self, name: str, raw) -> CategoryScore:
        weight = self.weights[name]
        if isinstance(raw, (int, float, str)):
            raw = {'score': raw}
        if not isinstance(raw, dict):
            raw = {}
        score = as_score(raw.get('score'))
        details = str(raw.get('details') or raw.get('reasoning') or '')
        if score is None:
            score = NEUTRAL_CATEGORY_SCORE
            details = details or "Category not scored by model"
        insights = raw.get('insights') if isinstance(raw.get('insights'), dict) else raw
        return CategoryScore(
            score=score,
            weight=weight,
            contribution=round(score * weight / 100.0, 2),
            strengths=as_str_list(insights.get('strengths')),
            weaknesses=as_str_list(insights.get('weaknesses')),
            opportunities=as_str_list(insights.get('opportunities')),
            threats=as_str_list(insights.get('threats')),
            details=details,
        )

    def parse(self, content: str, stage_input: ScoringInput) -> ParseResult[DetailedScoring]:
        try:
            data = snake_keys(extract_json_object(content))
        except ValueError as e:
            return ParseResult.failure(str(e))

        raw_categories = data.get('categories')
        if not isinstance(raw_categories, dict):
            raw_categories = data
        if not any(name in raw_categories for name in self.weights):
            return ParseResult.failure("Response contains none of the scoring categories")

        categories = {name: self._category(name, raw_categories.get(name)) for name in self.weights}

        overall = as_score(data.get('overall_score'))
        if overall is None:
            overall = recompute_overall(categories)
            logger.debug(f"Reported overall score invalid ({data.get('overall_score')!r}), recomputed {overall}")

        return ParseResult.success(DetailedScoring(
            categories=categories,
            overall_score=overall,
            confidence=as_score(data.get('confidence')),
            reasoning=str(data.get('reasoning') or ''),
        ))

    def on_parse_failure(self, stage_input: ScoringInput, error: str, content: str) -> DetailedScoring:
        return neutral_scoring(self.weights, reasoning=f"Scoring response could not be parsed: {error}")
