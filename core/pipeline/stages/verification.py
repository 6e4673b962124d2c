#!/usr/bin/env python3
"""
Verification Stage - Independent review of a detailed scoring.

Adjustments are per-category rescoring. When any is applied, that
category's contribution and the overall score are recomputed.
"""

import copy
import json
import logging

from core.llm.interfaces import GenerationRequest
from core.llm.system_prompts import VERIFICATION_SYSTEM_PROMPT
from core.pipeline.base import ParseResult, PipelineStage
from core.pipeline.defaults import passthrough_verification
from core.pipeline.models import DetailedScoring, VerifiedScoring
from core.pipeline.parsing import (
    as_score,
    as_str_list,
    extract_json_object,
    snake_case,
    snake_keys,
)
from core.pipeline.stages.detailed_scoring import recompute_overall

logger = logging.getLogger(__name__)


class VerificationStage(PipelineStage[DetailedScoring, VerifiedScoring]):

    name = "verification"

    def build_request(self, stage_input: DetailedScoring) -> GenerationRequest:
        prompt = (
            "Verify and calibrate these match scores.\n\n"
            f"ORIGINAL SCORING:\n{json.dumps(stage_input.to_dict(), indent=2, default=str)}"
        )
        return self._request(prompt, VERIFICATION_SYSTEM_PROMPT, json_response=True)

    def parse(self, content: str, stage_input: DetailedScoring) -> ParseResult[VerifiedScoring]:
        try:
            data = snake_keys(extract_json_object(content))
        except ValueError as e:
            return ParseResult.failure(str(e))

        scoring = copy.deepcopy(stage_input)
        applied = []
        for raw in data.get('adjustments') or []:
            if not isinstance(raw, dict):
                continue
            name = snake_case(str(raw.get('category') or ''))
            new_score = as_score(raw.get('new_score', raw.get('score')))
            category = scoring.categories.get(name)
            if category is None or new_score is None:
                logger.debug(f"Ignoring unusable verification adjustment: {raw}")
                continue
            applied.append({
                'category': name,
                'old_score': category.score,
                'new_score': new_score,
                'reason': str(raw.get('reason') or ''),
            })
            category.score = new_score
            category.contribution = round(new_score * category.weight / 100.0, 2)

        if applied:
            scoring.overall_score = recompute_overall(scoring.categories)

        final_confidence = as_score(data.get('final_confidence', data.get('confidence')))
        return ParseResult.success(VerifiedScoring(
            scoring=scoring,
            verification_notes=as_str_list(data.get('verification_notes')),
            adjustments=applied,
            final_confidence=final_confidence if final_confidence is not None else stage_input.confidence,
        ))

    def on_parse_failure(self, stage_input: DetailedScoring, error: str, content: str) -> VerifiedScoring:
        return passthrough_verification(stage_input, note=f"Verification response unusable: {error}")
