#  Proactive Engine - Usage API Integration Tests
#
#  Usage stats and live quota windows for the calling tenant.
#
#  Depends on: proactive_engine/routes/usage.py, tests/conftest.py
#  Used by:    pytest

from unittest.mock import patch


class TestIdentity:
    async def test_missing_headers_is_401(self, app_client):
        resp = await app_client.get(
            "/api/usage/stats", headers={"X-Tenant-ID": "", "X-User-ID": ""},
        )
        assert resp.status_code == 401


class TestUsageStats:
    async def test_empty_stats(self, app_client):
        resp = await app_client.get("/api/usage/stats")
        assert resp.status_code == 200
        data = resp.json()
        assert data["period"] == "day"
        assert data["by_service"] == {}
        assert data["totals"]["calls"] == 0
        assert {w["window_type"] for w in data["rate_limits"]} == {"minute", "hour", "day"}

    async def test_counts_ceremony_calls(self, app_client, seed_task):
        await seed_task("Write report", priority="high")
        assert (await app_client.post("/api/ceremonies/morning-focus")).status_code == 200

        data = (await app_client.get("/api/usage/stats?period=week")).json()
        assert data["by_service"]["ceremony"]["calls"] == 1
        assert data["by_service"]["ceremony"]["total_tokens"] == 150
        minute = next(w for w in data["rate_limits"] if w["window_type"] == "minute")
        assert minute["call_count"] == 1

    async def test_invalid_period_is_422(self, app_client):
        resp = await app_client.get("/api/usage/stats?period=year")
        assert resp.status_code == 422


class TestWindowCheck:
    async def test_fresh_window_allowed(self, app_client):
        resp = await app_client.get("/api/usage/windows/hour")
        assert resp.status_code == 200
        data = resp.json()
        assert data["allowed"] is True
        assert data["remaining"] == data["limit"]

    async def test_exhausted_window(self, app_client, services):
        with patch.dict("proactive_engine.services.quota.QUOTA_LIMITS", {"minute": 1}):
            await services["quota"].record_usage("tenant_a", 10)
            data = (await app_client.get("/api/usage/windows/minute")).json()
        assert data["allowed"] is False
        assert data["remaining"] == 0

    async def test_unknown_window_is_422(self, app_client):
        resp = await app_client.get("/api/usage/windows/fortnight")
        assert resp.status_code == 422
