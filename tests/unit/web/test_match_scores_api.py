"""
API tests for the match score endpoints.

The app is built with an injected AppContext wired from fakes, so no Redis
or generation gateway is needed.
"""
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from tests.mocks.scoring_mocks import FakeAsyncRedis, FakeGenerationProvider, build_test_context
from web.backend.app import create_app

HEADERS = {"X-Organization-Id": "org-acme", "X-User-Id": "user-1"}


@pytest.fixture
def ctx():
    return build_test_context(provider=FakeGenerationProvider(), redis=FakeAsyncRedis())


@pytest.fixture
def client(ctx):
    async def factory():
        await ctx.cache.connect()
        return ctx

    with TestClient(create_app(context_factory=factory)) as test_client:
        yield test_client


class TestScoreEndpoint:

    def test_scores_in_request_order(self, client, ctx):
        response = client.post(
            "/api/v1/match-scores",
            json={"opportunityIds": ["opp-1", "opp-2"]},
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert [r["opportunityId"] for r in body["results"]] == ["opp-1", "opp-2"]
        assert [r["score"] for r in body["results"]] == [100, 40]
        assert [r["fromCache"] for r in body["results"]] == [False, False]
        assert body["cacheMisses"] == 2
        assert body["cancelled"] is False
        assert "classification" in body["results"][0]["factors"]
        assert ctx.usage_recorder.events[0].quantity == 2

    def test_repeat_request_is_cached(self, client):
        client.post("/api/v1/match-scores", json={"opportunityIds": ["opp-1"]}, headers=HEADERS)

        response = client.post("/api/v1/match-scores", json={"opportunityIds": ["opp-1"]}, headers=HEADERS)

        body = response.json()
        assert body["results"][0]["fromCache"] is True
        assert body["cacheHits"] == 1

    def test_failed_entry_is_null(self, client):
        response = client.post(
            "/api/v1/match-scores",
            json={"opportunityIds": ["opp-1", "opp-missing"]},
            headers=HEADERS,
        )

        assert response.status_code == 200
        results = response.json()["results"]
        assert results[0]["score"] == 100
        assert results[1] is None

    def test_inline_opportunity(self, client):
        response = client.post(
            "/api/v1/match-scores",
            json={
                "opportunityIds": ["inline-1"],
                "opportunities": {"inline-1": {"title": "Pilot", "naicsCodes": ["541512"]}},
            },
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["results"][0]["opportunityId"] == "inline-1"

    def test_generative_method_alias(self, client):
        response = client.post(
            "/api/v1/match-scores",
            json={"opportunityIds": ["opp-1"], "method": "llm", "mode": "fast"},
            headers=HEADERS,
        )

        result = response.json()["results"][0]
        assert result["algorithmVersion"] == "v5.0-llm-fast"
        assert result["scoringMethod"] == "generative"
        assert result["score"] == 75

    def test_batch_too_large(self, client):
        ids = [f"opp-{i}" for i in range(51)]

        response = client.post("/api/v1/match-scores", json={"opportunityIds": ids}, headers=HEADERS)

        assert response.status_code == 400
        body = response.json()
        assert body["type"] == "BatchTooLarge"
        assert body["limit"] == 50

    def test_empty_batch(self, client):
        response = client.post("/api/v1/match-scores", json={"opportunityIds": []}, headers=HEADERS)

        assert response.status_code == 400

    def test_unknown_method(self, client):
        response = client.post(
            "/api/v1/match-scores",
            json={"opportunityIds": ["opp-1"], "method": "astrology"},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["type"] == "InvalidScoreRequest"

    def test_unknown_profile(self, client):
        response = client.post(
            "/api/v1/match-scores",
            json={"opportunityIds": ["opp-1"], "profileId": "profile-missing"},
            headers=HEADERS,
        )

        assert response.status_code == 404
        assert response.json()["type"] == "ProfileNotFound"

    def test_missing_organization_header(self, client):
        response = client.post("/api/v1/match-scores", json={"opportunityIds": ["opp-1"]})

        assert response.status_code == 401
        assert response.json()["success"] is False


class TestBulkCheckEndpoint:

    def test_splits_cached_and_missing(self, client, ctx):
        client.post("/api/v1/match-scores", json={"opportunityIds": ["opp-1"]}, headers=HEADERS)
        billed = len(ctx.usage_recorder.events)

        response = client.post(
            "/api/v1/match-scores/bulk-check",
            json={"opportunityIds": ["opp-1", "opp-2", "opp-unknown"]},
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert list(body["existingScores"]) == ["opp-1"]
        assert body["existingScores"]["opp-1"]["score"] == 100
        assert body["existingScores"]["opp-1"]["fromCache"] is True
        assert body["missingIds"] == ["opp-2", "opp-unknown"]
        assert len(ctx.usage_recorder.events) == billed

    def test_nothing_is_computed(self, client, ctx):
        client.post("/api/v1/match-scores/bulk-check", json={"opportunityIds": ["opp-1"]}, headers=HEADERS)

        again = client.post("/api/v1/match-scores", json={"opportunityIds": ["opp-1"]}, headers=HEADERS)

        assert again.json()["results"][0]["fromCache"] is False

    def test_method_selects_the_cache_entry(self, client):
        client.post("/api/v1/match-scores", json={"opportunityIds": ["opp-1"]}, headers=HEADERS)

        response = client.post(
            "/api/v1/match-scores/bulk-check",
            json={"opportunityIds": ["opp-1"], "method": "hybrid"},
            headers=HEADERS,
        )

        assert response.json()["missingIds"] == ["opp-1"]

    def test_too_many_ids(self, client):
        ids = [f"opp-{i}" for i in range(101)]

        response = client.post("/api/v1/match-scores/bulk-check", json={"opportunityIds": ids}, headers=HEADERS)

        assert response.status_code == 400
        assert response.json()["limit"] == 100

    def test_unknown_profile(self, client):
        response = client.post(
            "/api/v1/match-scores/bulk-check",
            json={"opportunityIds": ["opp-1"], "profileId": "profile-missing"},
            headers=HEADERS,
        )

        assert response.status_code == 404


class TestTriggerEndpoint:

    def test_trigger_queues_one_job_per_opportunity(self, client, ctx):
        ctx.dispatcher = MagicMock()
        ctx.dispatcher.dispatch_batch.return_value = ["job-1", "job-2"]

        response = client.post(
            "/api/v1/match-scores/trigger",
            json={"opportunityIds": ["opp-1", "opp-2"], "method": "hybrid"},
            headers=HEADERS,
        )

        assert response.status_code == 202
        assert response.json() == {"success": True, "jobIds": ["job-1", "job-2"]}
        requests = ctx.dispatcher.dispatch_batch.call_args.args[0]
        assert [r.opportunity_id for r in requests] == ["opp-1", "opp-2"]
        assert requests[0].method.value == "hybrid"
        assert requests[0].user_id == "user-1"

    def test_trigger_without_dispatcher(self, client):
        response = client.post(
            "/api/v1/match-scores/trigger",
            json={"opportunityIds": ["opp-1"]},
            headers=HEADERS,
        )

        assert response.status_code == 503
        assert response.json()["type"] == "DispatcherUnavailableException"

    def test_trigger_unknown_profile_queues_nothing(self, client, ctx):
        ctx.dispatcher = MagicMock()

        response = client.post(
            "/api/v1/match-scores/trigger",
            json={"opportunityIds": ["opp-1"], "profileId": "profile-missing"},
            headers=HEADERS,
        )

        assert response.status_code == 404
        ctx.dispatcher.dispatch_batch.assert_not_called()


class TestCacheEndpoints:

    def test_invalidate_profile_cache(self, client):
        client.post("/api/v1/match-scores", json={"opportunityIds": ["opp-1", "opp-2"]}, headers=HEADERS)

        response = client.delete("/api/v1/match-scores/cache", params={"profileId": "profile-acme"},
                                 headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"success": True, "profileId": "profile-acme", "invalidated": 2}

        again = client.post("/api/v1/match-scores", json={"opportunityIds": ["opp-1"]}, headers=HEADERS)
        assert again.json()["results"][0]["fromCache"] is False

    def test_invalidate_other_organizations_profile(self, client):
        response = client.delete("/api/v1/match-scores/cache", params={"profileId": "profile-acme"},
                                 headers={"X-Organization-Id": "org-other"})

        assert response.status_code == 404

    def test_cache_stats(self, client):
        response = client.get("/api/v1/match-scores/cache/stats")

        assert response.status_code == 200
        assert response.json()["stats"]["available"] is True


def test_health(client):
    response = client.get("/health")

    assert response.json() == {"status": "healthy", "service": "match-scoring-api"}
