"""
Tests for the command-line driver.
"""
import argparse
from unittest.mock import patch

import pytest

from core.config_loader import AppConfig
from core.scorer.models import ScoringMethod, ScoringMode
from main import build_requests, run_scoring
from tests.mocks.scoring_mocks import FakeAsyncRedis, build_test_context


def _args(**overrides):
    values = dict(
        organization="org-acme",
        profile=None,
        opportunities=["opp-1", "opp-missing"],
        method=None,
        scoring_mode=None,
        no_save=False,
        verbose=False,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


def test_build_requests():
    requests = build_requests(_args(method="llm", scoring_mode="enhanced", no_save=True))

    assert [r.opportunity_id for r in requests] == ["opp-1", "opp-missing"]
    assert requests[0].method == ScoringMethod.GENERATIVE
    assert requests[0].mode == ScoringMode.ADVANCED
    assert requests[0].save_results is False


def test_build_requests_rejects_unknown_method():
    with pytest.raises(ValueError):
        build_requests(_args(method="guess"))


@pytest.mark.asyncio
async def test_run_scoring_summary():
    redis = FakeAsyncRedis()

    async def create(config, **overrides):
        ctx = build_test_context(redis=redis, config=config)
        await ctx.cache.connect()
        return ctx

    with patch("main.AppContext.create", side_effect=create):
        summary = await run_scoring(AppConfig(), _args())

    assert summary["results"][0] == {
        "overall_score": 100,
        "confidence": 100,
        "algorithm_version": "v4.0-calculation",
        "opportunity_id": "opp-1",
        "from_cache": False,
    }
    assert summary["results"][1]["opportunity_id"] == "opp-missing"
    assert "not found" in summary["results"][1]["error"]
    assert summary["cache_misses"] == 1
    assert summary["cancelled"] is False
