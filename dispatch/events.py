#!/usr/bin/env python3
"""
Score Events - Messages published about background scoring jobs.

Events are JSON objects ``{"type", "data", "timestamp"}`` published on a
Redis pub/sub channel (``score.events`` by default).
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from redis import Redis

from core.scorer.models import ScoreOutcome, ScoreRequest

logger = logging.getLogger(__name__)

SCORE_REQUESTED = "score.requested"
SCORE_COMPLETED = "score.completed"
SCORE_FAILED = "score.failed"


def make_event(event_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": event_type,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def requested_event(request: ScoreRequest) -> Dict[str, Any]:
    return make_event(SCORE_REQUESTED, request.to_event_payload())


def completed_event(request: ScoreRequest, outcome: ScoreOutcome, processing_time_ms: int) -> Dict[str, Any]:
    result = outcome.result
    return make_event(SCORE_COMPLETED, {
        "opportunity_id": request.opportunity_id,
        "organization_id": request.organization_id,
        "profile_id": outcome.request.profile_id if outcome.request else request.profile_id,
        "score": result.overall_score,
        "details": result.to_dict(),
        "processing_time_ms": processing_time_ms,
        "cached": outcome.from_cache,
    })


def failed_event(request: ScoreRequest, error: str, retryable: bool) -> Dict[str, Any]:
    return make_event(SCORE_FAILED, {
        "opportunity_id": request.opportunity_id,
        "organization_id": request.organization_id,
        "error": error,
        "retryable": retryable,
    })


class EventPublisher:
    """Publishes score events to a Redis channel."""

    def __init__(self, redis_conn: Optional[Redis], channel: str = "score.events"):
        self.redis_conn = redis_conn
        self.channel = channel

    def publish(self, event: Dict[str, Any]) -> int:
        """Publish an event. Returns the number of subscribers that received it."""
        if self.redis_conn is None:
            logger.debug(f"No Redis connection, dropping {event['type']} event")
            return 0
        try:
            receivers = self.redis_conn.publish(self.channel, json.dumps(event, default=str))
            logger.debug(f"Published {event['type']} to {self.channel} ({receivers} subscribers)")
            return receivers
        except Exception as e:
            logger.warning(f"Failed to publish {event['type']} event: {e}")
            return 0
