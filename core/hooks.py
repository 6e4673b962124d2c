#!/usr/bin/env python3
"""
Scoring Hooks - Pre/post computation side effects.

Hooks are run by the orchestrator around every resolved score. A hook that
raises is logged and skipped; it never fails the scoring request.
"""

import logging
from abc import ABC
from typing import Optional

from core.cache.fingerprint import CacheKey
from core.scorer.models import ScoreOutcome, ScoreRequest, UsageEvent
from core.usage import UsageRecorder

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("audit.match_scores")


class ScoringHook(ABC):
    """Base hook. Both callbacks are optional."""

    name = "hook"

    async def before(self, request: ScoreRequest, key: CacheKey) -> None:
        return None

    async def after(self, request: ScoreRequest, outcome: ScoreOutcome, billed: bool) -> None:
        return None


class UsageTrackingHook(ScoringHook):
    """
    Emits one UsageEvent per fresh computation.

    Cache hits are never billed, and neither are computations whose caller
    bills them in aggregate (``billed=False``, the batch path).
    """

    name = "usage"

    def __init__(self, recorder: UsageRecorder, resource_type: str = "match_score_calculation"):
        self.recorder = recorder
        self.resource_type = resource_type

    async def after(self, request: ScoreRequest, outcome: ScoreOutcome, billed: bool) -> None:
        if outcome.from_cache or not billed:
            return
        await self.recorder.record(UsageEvent(
            organization_id=request.organization_id,
            quantity=1,
            resource_type=self.resource_type,
            metadata={
                'opportunity_id': request.opportunity_id,
                'profile_id': request.profile_id,
                'user_id': request.user_id,
                'method': request.method.value,
                'mode': request.mode.value,
                'algorithm_version': outcome.result.algorithm_version,
                'cost_units': outcome.result.cost_units,
                'resource_subtype': 'individual_calculation',
            },
        ))


class AuditLogHook(ScoringHook):
    """Writes one audit line per resolved score."""

    name = "audit"

    def __init__(self, audit: Optional[logging.Logger] = None):
        self.audit = audit or audit_logger

    async def before(self, request: ScoreRequest, key: CacheKey) -> None:
        self.audit.debug(f"Scoring requested org={request.organization_id} user={request.user_id} key={key}")

    async def after(self, request: ScoreRequest, outcome: ScoreOutcome, billed: bool) -> None:
        result = outcome.result
        self.audit.info(
            f"Scored opportunity={request.opportunity_id} profile={request.profile_id} "
            f"org={request.organization_id} user={request.user_id} score={result.overall_score} "
            f"version={result.algorithm_version} from_cache={outcome.from_cache} cost={result.cost_units}"
        )
