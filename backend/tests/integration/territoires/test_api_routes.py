"""HTTP tests for the territoire matching routes.

Run with: pytest tests/integration/territoires/test_api_routes.py -v
"""

import asyncio
from unittest.mock import AsyncMock, patch
from uuid import UUID, uuid4

from territoires.admission import ApiKeyRecord, hash_api_key, lookup_prefix
from territoires.batch import BatchCoordinator, BatchScheduler, InMemoryBatchRepository

MATCH_URL = "/api/v1/territoires/match"
BATCH_URL = "/api/v1/territoires/batch"


class TestHealth:
    def test_health_is_not_rate_limited(self, client):
        for _ in range(10):
            response = client.get("/health")
            assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers

    def test_ready_when_database_answers(self, client):
        with patch("main.ping_database", AsyncMock(return_value=True)):
            response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["database"] == "postgresql"

    def test_not_ready_when_database_is_down(self, client):
        with patch("main.ping_database", AsyncMock(side_effect=OSError("connection refused"))):
            response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "unavailable"

    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get("/api/v1/nowhere")

        assert response.status_code == 404
        assert response.json()["error_code"] == "HTTP_ERROR"
        assert response.headers["X-Error-Code"] == "HTTP_ERROR"


class TestMatchRoute:
    """Tests for POST /territoires/match."""

    def test_matched(self, client):
        response = client.post(MATCH_URL, json={"query": "84"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "matched"
        assert body["code"] == "84"
        assert body["nom"] == "Auvergne-Rhône-Alpes"
        assert body["confidence"] == 1.0
        assert body["matchSource"] == "direct"
        assert "alternatives" not in body

    def test_suggestions(self, client):
        response = client.post(MATCH_URL, json={"query": "Par"})

        body = response.json()
        assert body["status"] == "suggestions"
        assert len(body["alternatives"]) >= 2

    def test_hints(self, client):
        response = client.post(
            MATCH_URL, json={"query": "Métropole", "hints": {"type": "epci_metropole"}}
        )

        assert response.json()["code"] == "200046977"

    def test_failed_is_still_200(self, client):
        response = client.post(MATCH_URL, json={"query": "Atlantide"})

        assert response.status_code == 200
        assert response.json() == {
            "status": "failed",
            "message": 'No territoire found matching "Atlantide"',
        }

    def test_empty_query_rejected(self, client):
        response = client.post(MATCH_URL, json={"query": "   "})

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_REQUEST"

    def test_overlong_query_rejected(self, client):
        response = client.post(MATCH_URL, json={"query": "x" * 201})

        assert response.status_code == 400

    def test_missing_query_rejected(self, client):
        response = client.post(MATCH_URL, json={"hints": {}})

        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "query"

    def test_quota_headers(self, client):
        response = client.post(MATCH_URL, json={"query": "84"})

        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"
        assert response.headers["X-RateLimit-Reset"].endswith("Z")
        assert "X-Request-ID" in response.headers


class TestAdmission:
    """Tests for the admission gate."""

    def test_over_quota(self, client):
        for _ in range(5):
            assert client.post(MATCH_URL, json={"query": "84"}).status_code == 200

        response = client.post(MATCH_URL, json={"query": "84"})

        assert response.status_code == 429
        assert response.json()["error_code"] == "RATE_LIMITED"
        assert 0 < int(response.headers["Retry-After"]) <= 60
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_forwarded_ip_is_the_identity(self, client):
        for _ in range(5):
            client.post(MATCH_URL, json={"query": "84"}, headers={"X-Forwarded-For": "10.0.0.1"})

        other = client.post(
            MATCH_URL, json={"query": "84"}, headers={"X-Forwarded-For": "10.0.0.2, 10.0.0.1"}
        )

        assert other.status_code == 200

    def test_valid_api_key(self, client, api_key_repository):
        api_key = "atf_0123456789abcdefghijklmnop"
        api_key_repository.add(
            ApiKeyRecord(
                key_prefix=lookup_prefix(api_key),
                key_hash=hash_api_key(api_key, rounds=4),
            )
        )

        response = client.post(MATCH_URL, json={"query": "84"}, headers={"X-API-Key": api_key})

        assert response.headers["X-RateLimit-Limit"] == "10"
        assert "X-API-Key-Valid" not in response.headers

    def test_invalid_api_key_falls_back_to_ip(self, client):
        response = client.post(
            MATCH_URL, json={"query": "84"}, headers={"X-API-Key": "atf_not_a_real_key_000"}
        )

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-API-Key-Valid"] == "false"


class TestBatchRoutes:
    """Tests for the batch submit/status/results routes."""

    def test_full_flow(self, client, coordinator):
        submit = client.post(
            BATCH_URL,
            json={"items": [{"query": "84"}, {"query": "Par"}, {"query": "84"}], "clientId": "tests"},
        )

        assert submit.status_code == 202
        body = submit.json()
        request_id = body["requestId"]
        assert body["status"] == "pending"
        assert body["totalItems"] == 3
        assert body["estimatedDuration"] == 1
        assert body["statusUrl"] == f"http://testserver/api/v1/territoires/batch/{request_id}"

        not_ready = client.get(f"{BATCH_URL}/{request_id}/results")
        assert not_ready.status_code == 202
        assert not_ready.headers["Retry-After"] == "5"
        assert not_ready.json()["results"] == []
        assert "retryAfter" not in not_ready.json()

        asyncio.run(coordinator.process_batch(UUID(request_id)))

        status = client.get(f"{BATCH_URL}/{request_id}")
        assert status.status_code == 200
        assert status.json()["progress"] == 100
        assert status.json()["status"] == "completed"

        results = client.get(f"{BATCH_URL}/{request_id}/results")
        assert results.status_code == 200
        payload = results.json()
        assert [r["index"] for r in payload["results"]] == [0, 1, 2]
        assert [r["status"] for r in payload["results"]] == ["matched", "suggestions", "matched"]
        assert payload["summary"] == {
            "total": 3,
            "matched": 2,
            "suggestions": 1,
            "failed": 0,
            "successRate": 67,
        }

    def test_empty_batch_rejected(self, client):
        response = client.post(BATCH_URL, json={"items": []})

        assert response.status_code == 400
        assert response.json()["error"] == "Items array cannot be empty"

    def test_missing_items_rejected(self, client):
        response = client.post(BATCH_URL, json={})

        assert response.status_code == 400
        assert response.json()["error"] == "Items array is required"

    def test_oversized_batch_rejected(self, client):
        response = client.post(BATCH_URL, json={"items": [{"query": "Lyon"}] * 1001})

        assert response.status_code == 400
        assert response.json()["error"] == "Maximum 1000 items per batch"

    def test_unknown_batch(self, client):
        assert client.get(f"{BATCH_URL}/{uuid4()}").status_code == 404
        assert client.get(f"{BATCH_URL}/{uuid4()}/results").status_code == 404

    def test_invalid_request_id(self, client):
        response = client.get(f"{BATCH_URL}/not-a-uuid")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_REQUEST"

    def test_full_queue_returns_503(self, client, matcher, clock):
        client.app.state.coordinator = BatchCoordinator(
            InMemoryBatchRepository(),
            matcher,
            scheduler=BatchScheduler(workers=1, queue_size=1),
            clock=clock,
        )

        accepted = client.post(BATCH_URL, json={"items": [{"query": "Lyon"}]})
        rejected = client.post(BATCH_URL, json={"items": [{"query": "Paris"}]})

        assert accepted.status_code == 202
        assert rejected.status_code == 503
        assert rejected.headers["Retry-After"] == "5"
        assert rejected.headers["X-Error-Code"] == "SERVICE_UNAVAILABLE"
        assert rejected.json()["error_code"] == "SERVICE_UNAVAILABLE"
