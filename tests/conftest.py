"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
For the fakes themselves, see tests/mocks/scoring_mocks.py
"""

from datetime import date

import pytest

from core.scorer.calculator import ScoreCalculator
from core.scorer.models import Opportunity, Profile
from tests.mocks.scoring_mocks import (
    OPPORTUNITY_STRONG,
    OPPORTUNITY_WEAK,
    SAMPLE_PROFILE,
    FakeAsyncRedis,
    FakeGenerationProvider,
    build_test_context,
    make_cache,
)


@pytest.fixture
def profile() -> Profile:
    return Profile.from_dict(SAMPLE_PROFILE)


@pytest.fixture
def strong_opportunity() -> Opportunity:
    return Opportunity.from_dict(OPPORTUNITY_STRONG)


@pytest.fixture
def weak_opportunity() -> Opportunity:
    return Opportunity.from_dict(OPPORTUNITY_WEAK)


@pytest.fixture
def calculator() -> ScoreCalculator:
    """Calculator with a fixed date so certification expiry is stable."""
    return ScoreCalculator(today=date(2026, 1, 1))


@pytest.fixture
def provider() -> FakeGenerationProvider:
    return FakeGenerationProvider()


@pytest.fixture
def fake_redis() -> FakeAsyncRedis:
    return FakeAsyncRedis()


@pytest.fixture
async def cache(fake_redis):
    score_cache = make_cache(fake_redis)
    await score_cache.connect()
    return score_cache


@pytest.fixture
async def app_context(provider, fake_redis):
    """AppContext wired from fakes, with its cache connected."""
    ctx = build_test_context(provider=provider, redis=fake_redis)
    await ctx.cache.connect()
    yield ctx
    await ctx.close()
