#!/usr/bin/env python3
"""
Scoring exceptions - Input errors raised before any computation starts.
"""


class ScoringInputError(Exception):
    """Base class for errors caused by the caller's input."""
    pass


class InvalidScoreRequest(ScoringInputError):
    """Raised when a request is malformed (empty batch, bad method, etc.)."""
    pass


class BatchTooLarge(InvalidScoreRequest):
    """Raised when a batch exceeds the configured ceiling."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Batch of {size} requests exceeds the limit of {limit}")


class ProfileNotFound(ScoringInputError):
    """Raised when no profile exists for the given id or organization."""

    def __init__(self, profile_id=None, organization_id=None):
        self.profile_id = profile_id
        self.organization_id = organization_id
        if profile_id:
            message = f"Profile not found: {profile_id}"
        else:
            message = f"No default profile for organization: {organization_id}"
        super().__init__(message)


class OpportunityNotFound(ScoringInputError):
    """Raised when an opportunity id cannot be resolved."""

    def __init__(self, opportunity_id: str):
        self.opportunity_id = opportunity_id
        super().__init__(f"Opportunity not found: {opportunity_id}")
