#!/usr/bin/env python3
"""
Pipeline Models - Structured values passed between generative scoring stages.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.scorer.models import CategoryScore


@dataclass
class ReasoningStep:
    step: str
    analysis: str
    confidence: float = 75.0
    evidence: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'step': self.step,
            'analysis': self.analysis,
            'confidence': self.confidence,
            'evidence': list(self.evidence),
        }


@dataclass
class ContextAnalysis:
    """Output of the reasoning stage."""
    analysis: str = ""
    explicit_requirements: List[Dict[str, Any]] = field(default_factory=list)
    implicit_requirements: List[Dict[str, Any]] = field(default_factory=list)
    hidden_preferences: List[Dict[str, Any]] = field(default_factory=list)
    red_flags: List[Dict[str, Any]] = field(default_factory=list)
    competitive_landscape: Dict[str, Any] = field(default_factory=dict)
    reasoning_steps: List[ReasoningStep] = field(default_factory=list)
    model_used: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'analysis': self.analysis,
            'explicit_requirements': list(self.explicit_requirements),
            'implicit_requirements': list(self.implicit_requirements),
            'hidden_preferences': list(self.hidden_preferences),
            'red_flags': list(self.red_flags),
            'competitive_landscape': dict(self.competitive_landscape),
            'reasoning_steps': [s.to_dict() for s in self.reasoning_steps],
            'model_used': self.model_used,
        }


@dataclass
class DetailedScoring:
    """Four-category scoring produced by the detailed scoring stage."""
    categories: Dict[str, CategoryScore]
    overall_score: float
    confidence: Optional[float] = None
    reasoning: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'categories': {name: c.to_dict() for name, c in self.categories.items()},
            'overall_score': self.overall_score,
            'confidence': self.confidence,
            'reasoning': self.reasoning,
        }


@dataclass
class VerifiedScoring:
    """A DetailedScoring after independent review, with any rescoring applied."""
    scoring: DetailedScoring
    verification_notes: List[str] = field(default_factory=list)
    adjustments: List[Dict[str, Any]] = field(default_factory=list)
    final_confidence: Optional[float] = None


@dataclass
class StrategicInsights:
    """Pursuit advice derived from a verified scoring."""
    win_probability: Dict[str, Any]
    competitive_advantages: List[Dict[str, Any]] = field(default_factory=list)
    critical_gaps: List[Dict[str, Any]] = field(default_factory=list)
    teaming_recommendations: List[Dict[str, Any]] = field(default_factory=list)
    proposal_strategy: Dict[str, Any] = field(default_factory=dict)
    go_no_go: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'win_probability': dict(self.win_probability),
            'competitive_advantages': list(self.competitive_advantages),
            'critical_gaps': list(self.critical_gaps),
            'teaming_recommendations': list(self.teaming_recommendations),
            'proposal_strategy': dict(self.proposal_strategy),
            'go_no_go': dict(self.go_no_go),
        }
