#!/usr/bin/env python3
"""
Scoring Module - Deterministic rule-based scoring.

Public API:
- ScoreCalculator: Five-factor calculator producing a ScoreResult
- Profile, Opportunity, ScoreRequest, ScoreResult: Domain records

- models.py: Data structures and algorithm version tags
- factors.py: Per-factor score calculations
- calculator.py: ScoreCalculator
"""

from core.scorer.calculator import ScoreCalculator
from core.scorer.models import (
    CategoryScore,
    Opportunity,
    Profile,
    ScoreOutcome,
    ScoreRequest,
    ScoreResult,
    ScoringMethod,
    ScoringMode,
    UsageEvent,
)

__all__ = [
    'ScoreCalculator',
    'CategoryScore',
    'Opportunity',
    'Profile',
    'ScoreOutcome',
    'ScoreRequest',
    'ScoreResult',
    'ScoringMethod',
    'ScoringMode',
    'UsageEvent',
]
