#!/usr/bin/env python3
"""
Safe Defaults - The one place each structured pipeline value gets its fallback.

Used when a model response cannot be parsed, when an optional stage fails,
and for the reduced fast-mode result.
"""

from typing import Dict, List, Optional

from core.pipeline.models import (
    ContextAnalysis,
    DetailedScoring,
    ReasoningStep,
    StrategicInsights,
    VerifiedScoring,
)
from core.scorer.models import CategoryScore, round_half_up

NEUTRAL_CATEGORY_SCORE = 50.0
PLACEHOLDER_WIN_PROBABILITY = 50
PLACEHOLDER_INTERVAL = [35, 65]
FAST_MODE_WIN_FACTOR = 0.8
FAST_MODE_INTERVAL_HALF_WIDTH = 15


def minimal_context_analysis(
    model_used: str = "fast-mode",
    analysis: str = "",
    steps: Optional[List[ReasoningStep]] = None
) -> ContextAnalysis:
    """Context with no requirements or preferences. Used in fast mode and on parse failure."""
    return ContextAnalysis(
        analysis=analysis,
        competitive_landscape={
            'likely_incumbent': None,
            'estimated_competitors': 0,
            'incumbent_vulnerabilities': [],
        },
        reasoning_steps=list(steps or []),
        model_used=model_used,
    )


def neutral_scoring(weights: Dict[str, float], reasoning: str = "") -> DetailedScoring:
    """Score 50 in every category; contributions follow the weights."""
    categories = {
        name: CategoryScore(
            score=NEUTRAL_CATEGORY_SCORE,
            weight=weight,
            contribution=round(NEUTRAL_CATEGORY_SCORE * weight / 100.0, 2),
            details="Neutral score: model response unavailable",
        )
        for name, weight in weights.items()
    }
    return DetailedScoring(
        categories=categories,
        overall_score=round(sum(c.contribution for c in categories.values()), 2),
        confidence=NEUTRAL_CATEGORY_SCORE,
        reasoning=reasoning,
    )


def passthrough_verification(scoring: DetailedScoring, note: str = "Verification unavailable") -> VerifiedScoring:
    return VerifiedScoring(
        scoring=scoring,
        verification_notes=[note],
        adjustments=[],
        final_confidence=scoring.confidence,
    )


def placeholder_insights(rationale: str = "Strategic analysis unavailable") -> StrategicInsights:
    """Conservative insights with no named advantages or gaps."""
    return StrategicInsights(
        win_probability={
            'percentage': PLACEHOLDER_WIN_PROBABILITY,
            'rationale': rationale,
            'confidence_interval': list(PLACEHOLDER_INTERVAL),
        },
        proposal_strategy={'win_themes': [], 'discriminators': [], 'ghosting_opportunities': []},
    )


def fast_mode_insights(overall_score: int) -> StrategicInsights:
    """Win probability estimated as 80% of the score with a +/-15 interval."""
    return StrategicInsights(
        win_probability={
            'percentage': round_half_up(FAST_MODE_WIN_FACTOR * overall_score),
            'rationale': "Fast mode estimation based on match score",
            'confidence_interval': [
                max(0, overall_score - FAST_MODE_INTERVAL_HALF_WIDTH),
                min(100, overall_score + FAST_MODE_INTERVAL_HALF_WIDTH),
            ],
        },
        proposal_strategy={'win_themes': [], 'discriminators': [], 'ghosting_opportunities': []},
    )
