"""Generative scoring stages."""
from core.pipeline.stages.detailed_scoring import DetailedScoringStage, ScoringInput
from core.pipeline.stages.insight import InsightInput, InsightStage
from core.pipeline.stages.reasoning import ReasoningInput, ReasoningStage
from core.pipeline.stages.verification import VerificationStage

__all__ = [
    'DetailedScoringStage',
    'ScoringInput',
    'InsightInput',
    'InsightStage',
    'ReasoningInput',
    'ReasoningStage',
    'VerificationStage',
]
