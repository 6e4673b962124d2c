#!/usr/bin/env python3
"""
Pipeline Module - Multi-step generative scoring.

Public API:
- ScoringPipeline: Runs the stages for fast or advanced mode
- PipelineFailure: Raised when a required stage cannot complete
- PipelineState: Stage identifiers

- base.py: CostLedger, ParseResult, StageOutput, PipelineStage
- parsing.py: JSON extraction from model output
- defaults.py: Safe default values
- stages/: Reasoning, DetailedScoring, Verification, Insight
"""

from core.pipeline.pipeline import PipelineFailure, PipelineState, ScoringPipeline

__all__ = ['ScoringPipeline', 'PipelineFailure', 'PipelineState']
