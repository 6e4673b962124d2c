#!/usr/bin/env python3
"""
Usage Recorders - Where billable UsageEvents are sent.

The billing service consumes the Redis list; the in-memory recorder is for
local runs and tests.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from redis.asyncio import Redis

from core.scorer.models import UsageEvent

logger = logging.getLogger(__name__)


class UsageRecorder(ABC):

    @abstractmethod
    async def record(self, event: UsageEvent) -> None:
        pass


class MemoryUsageRecorder(UsageRecorder):
    """Keeps events in process."""

    def __init__(self):
        self.events: List[UsageEvent] = []

    async def record(self, event: UsageEvent) -> None:
        self.events.append(event)

    @property
    def total_quantity(self) -> int:
        return sum(e.quantity for e in self.events)


class RedisUsageRecorder(UsageRecorder):
    """Appends events as JSON to a Redis list."""

    def __init__(self, client: Redis, list_key: str = "usage:events"):
        self._redis = client
        self.list_key = list_key

    async def record(self, event: UsageEvent) -> None:
        payload = event.to_dict()
        await self._redis.rpush(self.list_key, json.dumps(payload))
        logger.debug(
            f"Recorded usage {event.resource_type} x{event.quantity} for organization {event.organization_id}"
        )

    async def close(self) -> None:
        await self._redis.aclose()


def build_usage_recorder(usage_config, redis_url: Optional[str] = None) -> UsageRecorder:
    if usage_config.backend == "redis" and redis_url:
        client = Redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=5, socket_timeout=5)
        return RedisUsageRecorder(client, usage_config.redis_list_key)
    if usage_config.backend != "memory":
        logger.warning(f"Usage backend {usage_config.backend!r} unavailable, recording usage in memory")
    return MemoryUsageRecorder()
