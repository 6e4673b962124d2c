#!/usr/bin/env python3
"""
Score Calculator - Deterministic rule-based match scoring.

Combines the factor scores from factors.py into a ScoreResult using
configurable weights. Pure and synchronous: no I/O, no randomness, and
malformed records are scored as missing data rather than raising.
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from core.config_loader import FactorWeights
from core.scorer.factors import DATED_FACTORS, FACTOR_FUNCTIONS, FactorAssessment
from core.scorer.models import (
    ALGORITHM_CALCULATION,
    CategoryScore,
    Opportunity,
    Profile,
    ScoreResult,
    ScoringMethod,
    round_half_up,
)

logger = logging.getLogger(__name__)


def describe_band(score: int) -> str:
    if score >= 80:
        return "Excellent match"
    if score >= 65:
        return "Good match"
    if score >= 50:
        return "Fair match"
    if score >= 30:
        return "Weak match"
    return "Poor match"


class ScoreCalculator:
    """
    Deterministic calculator.

    Usage:
        calculator = ScoreCalculator(config.scoring.factor_weights)
        result = calculator.calculate(opportunity, profile)

    Certification expiry and past performance recency are judged against
    ``today``. When it is None the current date is read on every call, so the
    same inputs can score differently once a certificate lapses or a contract
    ages out of the recency window. Cached results keep the score of the day
    they were computed until their TTL runs out.
    """

    def __init__(self, weights: Optional[FactorWeights] = None, today: Optional[date] = None):
        self.weights = (weights or FactorWeights()).as_dict()
        self._today = today

    def assess(self, opportunity: Opportunity, profile: Profile) -> Dict[str, FactorAssessment]:
        today = self._today or date.today()
        assessments = {}
        for name, func in FACTOR_FUNCTIONS.items():
            if name in DATED_FACTORS:
                assessments[name] = func(opportunity, profile, today=today)
            else:
                assessments[name] = func(opportunity, profile)
        return assessments

    def calculate(self, opportunity: Opportunity, profile: Profile) -> ScoreResult:
        assessments = self.assess(opportunity, profile)

        categories: Dict[str, CategoryScore] = {}
        total = 0.0
        with_data = 0
        for name, assessment in assessments.items():
            weight = self.weights[name]
            contribution = round(assessment.score * weight / 100.0, 2)
            total += contribution
            if assessment.has_data:
                with_data += 1
            categories[name] = CategoryScore(
                score=round(assessment.score, 2),
                weight=weight,
                contribution=contribution,
                strengths=list(assessment.strengths),
                weaknesses=list(assessment.weaknesses),
                details=assessment.details,
            )

        overall = round_half_up(total)
        confidence = round_half_up(50 + 50 * with_data / len(assessments))

        logger.debug(
            f"Calculated score {overall} for opportunity={opportunity.id} profile={profile.id} "
            f"({with_data}/{len(assessments)} factors with data)"
        )

        return ScoreResult(
            overall_score=overall,
            confidence=confidence,
            algorithm_version=ALGORITHM_CALCULATION,
            categories=categories,
            recommendations=self._recommendations(overall, categories),
            cost_units=0.0,
            processing_time_ms=0,
            scoring_method=ScoringMethod.CALCULATION.value,
            explanation=self._explanation(overall, categories),
        )

    def _explanation(self, overall: int, categories: Dict[str, CategoryScore]) -> str:
        ranked = sorted(categories.items(), key=lambda item: item[1].score, reverse=True)
        best = ranked[0][0].replace('_', ' ')
        worst = ranked[-1][0].replace('_', ' ')
        return f"{describe_band(overall)} ({overall}/100). Strongest factor: {best}; weakest factor: {worst}."

    def _recommendations(self, overall: int, categories: Dict[str, CategoryScore]) -> List[str]:
        recommendations = []
        if overall >= 80:
            recommendations.append("Strong alignment - prioritize this opportunity")
        elif overall >= 65:
            recommendations.append("Good fit - review requirements and prepare a response")
        elif overall >= 50:
            recommendations.append("Moderate fit - consider teaming to close gaps")
        else:
            recommendations.append("Low alignment - pursue only with a clear strategic reason")

        for category in categories.values():
            if category.score < 50:
                recommendations.extend(category.weaknesses)
        return recommendations
