#!/usr/bin/env python3
"""
Insight Stage - Win probability, gaps, teaming and proposal strategy.
"""

import json
import logging
from dataclasses import dataclass

from core.llm.interfaces import GenerationRequest
from core.llm.system_prompts import INSIGHT_SYSTEM_PROMPT
from core.pipeline.base import ParseResult, PipelineStage
from core.pipeline.defaults import placeholder_insights
from core.pipeline.models import StrategicInsights, VerifiedScoring
from core.pipeline.parsing import (
    as_dict_list,
    as_score,
    as_str_list,
    extract_json_object,
    snake_keys,
)
from core.scorer.models import Opportunity, Profile, round_half_up

logger = logging.getLogger(__name__)

GAP_SEVERITIES = ('DISQUALIFYING', 'CRITICAL', 'IMPORTANT', 'MINOR')


@dataclass
class InsightInput:
    verified: VerifiedScoring
    opportunity: Opportunity
    profile: Profile


def _interval(value, percentage: float):
    if isinstance(value, (list, tuple)) and len(value) == 2:
        low, high = as_score(value[0]), as_score(value[1])
        if low is not None and high is not None and low <= high:
            return [round_half_up(low), round_half_up(high)]
    return [max(0, round_half_up(percentage) - 15), min(100, round_half_up(percentage) + 15)]


class InsightStage(PipelineStage[InsightInput, StrategicInsights]):

    name = "insight"

    def build_request(self, stage_input: InsightInput) -> GenerationRequest:
        scoring = stage_input.verified.scoring
        score_core = {
            'overall_score': scoring.overall_score,
            'confidence': stage_input.verified.final_confidence,
            'categories': {name: {'score': c.score} for name, c in scoring.categories.items()},
        }
        opportunity = stage_input.opportunity
        prompt = (
            f"SCORE: {json.dumps(score_core)}\n"
            f"OPPORTUNITY: {opportunity.title} ({opportunity.agency}, ${opportunity.estimated_value})\n"
            f"CONTRACTOR: {json.dumps(stage_input.profile.prompt_view(), default=str)}\n\n"
            "Base every insight on specific profile data versus the opportunity requirements."
        )
        return self._request(prompt, INSIGHT_SYSTEM_PROMPT, json_response=True)

    def parse(self, content: str, stage_input: InsightInput) -> ParseResult[StrategicInsights]:
        try:
            data = snake_keys(extract_json_object(content))
        except ValueError as e:
            return ParseResult.failure(str(e))

        win = data.get('win_probability')
        if isinstance(win, (int, float, str)):
            win = {'percentage': win}
        if not isinstance(win, dict):
            return ParseResult.failure("Response has no win_probability")
        percentage = as_score(win.get('percentage'))
        if percentage is None:
            return ParseResult.failure(f"Invalid win probability: {win.get('percentage')!r}")

        gaps = as_dict_list(data.get('critical_gaps'), 'gap')
        for gap in gaps:
            severity = str(gap.get('severity') or '').upper()
            gap['severity'] = severity if severity in GAP_SEVERITIES else 'IMPORTANT'

        strategy = data.get('proposal_strategy') if isinstance(data.get('proposal_strategy'), dict) else {}
        go_no_go = data.get('go_no_go')
        if isinstance(go_no_go, str):
            go_no_go = {'recommendation': go_no_go}

        return ParseResult.success(StrategicInsights(
            win_probability={
                'percentage': round_half_up(percentage),
                'rationale': str(win.get('rationale') or ''),
                'confidence_interval': _interval(win.get('confidence_interval'), percentage),
            },
            competitive_advantages=as_dict_list(data.get('competitive_advantages'), 'advantage'),
            critical_gaps=gaps,
            teaming_recommendations=as_dict_list(data.get('teaming_recommendations'), 'partner_type'),
            proposal_strategy={
                'win_themes': as_str_list(strategy.get('win_themes')),
                'discriminators': as_str_list(strategy.get('discriminators')),
                'ghosting_opportunities': as_str_list(strategy.get('ghosting_opportunities')),
            },
            go_no_go=go_no_go if isinstance(go_no_go, dict) else {},
        ))

    def on_parse_failure(self, stage_input: InsightInput, error: str, content: str) -> StrategicInsights:
        return placeholder_insights(rationale=f"Strategic analysis unavailable: {error}")
