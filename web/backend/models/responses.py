#!/usr/bin/env python3
"""
Response models for API endpoints.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any


class MatchScoreResult(BaseModel):
    """Score for one opportunity."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "opportunityId": "opp-1",
                "score": 82,
                "factors": {
                    "naics": {"score": 100, "weight": 30, "contribution": 30.0}
                },
                "algorithmVersion": "v4.0-calculation",
                "confidence": 100,
                "costUnits": 0.0,
                "fromCache": False
            }
        }
    )

    opportunityId: str
    score: int = Field(ge=0, le=100)
    factors: Dict[str, Dict[str, Any]]
    algorithmVersion: str
    confidence: int = Field(ge=0, le=100)
    costUnits: float = Field(ge=0)
    fromCache: bool
    scoringMethod: Optional[str] = None
    recommendations: List[str] = Field(default_factory=list)
    explanation: Optional[str] = None
    winProbability: Optional[int] = None
    strategicInsights: Optional[Dict[str, Any]] = None


class MatchScoreBatchResponse(BaseModel):
    """Response for a scoring request. Failed entries are null."""
    success: bool
    results: List[Optional[MatchScoreResult]]
    cacheHits: int
    cacheMisses: int
    processingTimeMs: int
    cancelled: bool = False


class BulkCheckResponse(BaseModel):
    """Cached scores by opportunity id, and the ids that still need scoring."""
    success: bool
    existingScores: Dict[str, MatchScoreResult]
    missingIds: List[str]


class TriggerResponse(BaseModel):
    """Response for background scoring."""
    success: bool
    jobIds: List[str]


class CacheInvalidationResponse(BaseModel):
    success: bool
    profileId: str
    invalidated: int


class CacheStatsResponse(BaseModel):
    success: bool
    stats: Dict[str, Any]
