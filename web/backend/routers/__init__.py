"""API route handlers."""

from .match_scores import router as match_scores_router
