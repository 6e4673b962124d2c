#!/usr/bin/env python3
"""
Request models for API endpoints.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class MatchScoreRequest(BaseModel):
    """Request to score one or more opportunities against a profile."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "opportunityIds": ["opp-1", "opp-2"],
                "profileId": "profile-acme",
                "method": "hybrid",
                "mode": "fast",
                "saveResults": True
            }
        }
    )

    opportunity_ids: List[str] = Field(
        ...,
        alias="opportunityIds",
        description="Opportunities to score (at most the configured batch size)"
    )
    profile_id: Optional[str] = Field(
        None,
        alias="profileId",
        description="Profile to score against, or null for the organization default"
    )
    method: Optional[str] = Field(None, description="calculation, generative (llm) or hybrid")
    mode: Optional[str] = Field(None, description="fast or advanced")
    save_results: bool = Field(True, alias="saveResults", description="Store fresh results in the score cache")
    opportunities: Optional[Dict[str, Dict[str, Any]]] = Field(
        None,
        description="Inline opportunity records keyed by id, used instead of the data source"
    )


class BulkCheckRequest(BaseModel):
    """Ask which opportunities already have a cached score."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "opportunityIds": ["opp-1", "opp-2"],
                "method": "calculation"
            }
        }
    )

    opportunity_ids: List[str] = Field(..., alias="opportunityIds")
    profile_id: Optional[str] = Field(None, alias="profileId")
    method: Optional[str] = Field(None, description="calculation, generative (llm) or hybrid")
    mode: Optional[str] = Field(None, description="fast or advanced")
