#!/usr/bin/env python3
"""
Reasoning Stage - Contrast explicit and implicit requirements with the profile.

The model answers with numbered free-text analysis followed by a JSON block.
"""

import json
import logging
from dataclasses import dataclass

from core.llm.interfaces import GenerationRequest
from core.llm.system_prompts import REASONING_INSTRUCTIONS, REASONING_SYSTEM_PROMPT
from core.pipeline.base import ParseResult, PipelineStage
from core.pipeline.defaults import minimal_context_analysis
from core.pipeline.models import ContextAnalysis, ReasoningStep
from core.pipeline.parsing import (
    as_dict_list,
    as_number,
    as_str_list,
    extract_json_object,
    extract_numbered_steps,
    snake_keys,
)
from core.scorer.models import Opportunity, Profile

logger = logging.getLogger(__name__)


@dataclass
class ReasoningInput:
    opportunity: Opportunity
    profile: Profile


def _steps_from_text(content: str):
    return [
        ReasoningStep(step=s['step'], analysis=s['analysis'])
        for s in extract_numbered_steps(content)
    ]


class ReasoningStage(PipelineStage[ReasoningInput, ContextAnalysis]):

    name = "reasoning"

    def build_request(self, stage_input: ReasoningInput) -> GenerationRequest:
        prompt = (
            f"OPPORTUNITY: {json.dumps(stage_input.opportunity.prompt_view(), default=str)}\n"
            f"CONTRACTOR: {json.dumps(stage_input.profile.prompt_view(), default=str)}\n\n"
            f"{REASONING_INSTRUCTIONS}"
        )
        return self._request(prompt, REASONING_SYSTEM_PROMPT, json_response=False)

    def parse(self, content: str, stage_input: ReasoningInput) -> ParseResult[ContextAnalysis]:
        try:
            data = snake_keys(extract_json_object(content, prefer_last=True))
        except ValueError as e:
            return ParseResult.failure(str(e))

        steps = []
        for raw in data.get('reasoning_steps') or []:
            if isinstance(raw, dict) and raw.get('analysis'):
                steps.append(ReasoningStep(
                    step=str(raw.get('step') or f"Step {len(steps) + 1}"),
                    analysis=str(raw['analysis']),
                    confidence=as_number(raw.get('confidence')) or 75.0,
                    evidence=as_str_list(raw.get('evidence')),
                ))
        if not steps:
            steps = _steps_from_text(content)

        landscape = data.get('competitive_landscape')
        return ParseResult.success(ContextAnalysis(
            analysis=str(data.get('analysis') or data.get('summary') or ''),
            explicit_requirements=as_dict_list(data.get('explicit_requirements'), 'requirement'),
            implicit_requirements=as_dict_list(data.get('implicit_requirements'), 'requirement'),
            hidden_preferences=as_dict_list(data.get('hidden_preferences'), 'preference'),
            red_flags=as_dict_list(data.get('red_flags'), 'issue'),
            competitive_landscape=landscape if isinstance(landscape, dict) else {},
            reasoning_steps=steps,
            model_used=self.model,
        ))

    def on_parse_failure(self, stage_input: ReasoningInput, error: str, content: str) -> ContextAnalysis:
        prose = (content or "").split("{", 1)[0].strip()
        return minimal_context_analysis(
            model_used=self.model,
            analysis=prose[:1000],
            steps=_steps_from_text(content),
        )
