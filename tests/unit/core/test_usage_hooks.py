"""
Tests for usage recorders and the scoring hooks that feed them.
"""
import json
import logging
from unittest.mock import MagicMock, patch

import pytest

from core.cache.fingerprint import CacheKey
from core.config_loader import UsageConfig
from core.hooks import AuditLogHook, UsageTrackingHook
from core.scorer.models import ScoreOutcome, ScoreRequest, ScoreResult, ScoringMethod, ScoringMode, UsageEvent
from core.usage import MemoryUsageRecorder, RedisUsageRecorder, build_usage_recorder
from tests.mocks.scoring_mocks import FakeAsyncRedis


def _outcome(from_cache=False):
    request = ScoreRequest(opportunity_id="opp-1", organization_id="org-acme", user_id="user-1",
                           profile_id="profile-acme")
    result = ScoreResult(overall_score=80, confidence=90, algorithm_version="v4.0-calculation", cost_units=0.5)
    return request, ScoreOutcome(result=result, from_cache=from_cache, cache_key="k", request=request)


class TestUsageRecorders:

    @pytest.mark.asyncio
    async def test_memory_recorder(self):
        recorder = MemoryUsageRecorder()

        await recorder.record(UsageEvent(organization_id="org-acme", quantity=2))
        await recorder.record(UsageEvent(organization_id="org-acme", quantity=1))

        assert recorder.total_quantity == 3

    @pytest.mark.asyncio
    async def test_redis_recorder_pushes_json(self):
        redis = FakeAsyncRedis()
        recorder = RedisUsageRecorder(redis, "usage:test")

        await recorder.record(UsageEvent(organization_id="org-acme", quantity=3, metadata={"hits": 1}))
        await recorder.close()

        payload = json.loads(redis.lists["usage:test"][0])
        assert payload["organization_id"] == "org-acme"
        assert payload["quantity"] == 3
        assert payload["resource_type"] == "match_score_calculation"
        assert payload["metadata"] == {"hits": 1}
        assert redis.closed is True

    def test_build_memory_recorder(self):
        recorder = build_usage_recorder(UsageConfig(backend="memory"), "redis://localhost:6379/0")

        assert isinstance(recorder, MemoryUsageRecorder)

    def test_build_redis_recorder(self):
        with patch("core.usage.Redis") as mock_redis:
            mock_redis.from_url.return_value = MagicMock()

            recorder = build_usage_recorder(UsageConfig(backend="redis"), "redis://localhost:6379/0")

        assert isinstance(recorder, RedisUsageRecorder)
        mock_redis.from_url.assert_called_once()
        assert mock_redis.from_url.call_args.args[0] == "redis://localhost:6379/0"

    def test_unknown_backend_falls_back_to_memory(self):
        assert isinstance(build_usage_recorder(UsageConfig(backend="kafka")), MemoryUsageRecorder)


class TestUsageTrackingHook:

    @pytest.mark.asyncio
    async def test_fresh_computation_is_billed(self):
        recorder = MemoryUsageRecorder()
        request, outcome = _outcome()

        await UsageTrackingHook(recorder).after(request, outcome, True)

        event = recorder.events[0]
        assert event.quantity == 1
        assert event.metadata["user_id"] == "user-1"
        assert event.metadata["cost_units"] == 0.5
        assert event.metadata["method"] == "calculation"

    @pytest.mark.asyncio
    async def test_cache_hit_is_not_billed(self):
        recorder = MemoryUsageRecorder()
        request, outcome = _outcome(from_cache=True)

        await UsageTrackingHook(recorder).after(request, outcome, True)

        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_aggregate_billing_skips_the_hook(self):
        recorder = MemoryUsageRecorder()
        request, outcome = _outcome()

        await UsageTrackingHook(recorder).after(request, outcome, False)

        assert recorder.events == []


class TestAuditLogHook:

    @pytest.mark.asyncio
    async def test_writes_one_line_per_score(self, caplog, profile):
        request, outcome = _outcome()
        key = CacheKey.build(profile, "opp-1", ScoringMethod.CALCULATION, ScoringMode.FAST)
        hook = AuditLogHook()

        with caplog.at_level(logging.DEBUG, logger="audit.match_scores"):
            await hook.before(request, key)
            await hook.after(request, outcome, True)

        messages = [r.getMessage() for r in caplog.records if r.name == "audit.match_scores"]
        assert len(messages) == 2
        assert "score=80" in messages[1]
        assert "from_cache=False" in messages[1]
