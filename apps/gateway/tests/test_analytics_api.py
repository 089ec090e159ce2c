"""日历分析与行为模式 API 测试"""

from httpx import AsyncClient


class TestCalendar:
    async def test_requires_dates(self, client: AsyncClient):
        resp = await client.get("/api/analytics/calendar", params={"userId": "u1"})

        assert resp.status_code == 400
        assert resp.json() == {
            "error": {"code": "BAD_REQUEST", "message": "Start and end dates required"}
        }

    async def test_rejects_inverted_range(self, client: AsyncClient):
        resp = await client.get(
            "/api/analytics/calendar",
            params={"userId": "u1", "start": "2025-03-15", "end": "2025-03-01"},
        )

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "BAD_REQUEST"

    async def test_requires_user(self, client: AsyncClient):
        resp = await client.get(
            "/api/analytics/calendar", params={"start": "2025-03-01", "end": "2025-03-15"}
        )

        assert resp.status_code == 422

    async def test_aggregates_range(self, app, client: AsyncClient, create_task):
        first = await create_task(due_at="2025-03-05T10:00:00Z")
        await create_task(title="Prep slides", due_at="2025-03-07T15:00:00Z")
        await create_task(title="Out of range", due_at="2025-04-01T09:00:00Z")
        await client.patch(f"/api/tasks/{first['task_id']}", json={"status": "done"})

        resp = await client.get(
            "/api/analytics/calendar",
            params={"userId": "u1", "start": "2025-03-01", "end": "2025-03-15"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert sorted(body["tasksByDate"]) == ["2025-03-05", "2025-03-07"]
        assert body["summary"]["totalTasks"] == 2
        assert body["summary"]["completedTasks"] == 1
        assert body["summary"]["completionRate"] == 50.0
        assert body["patterns"]["nextOptimalSlot"]["hour"] == 9
        assert body["ml"] is None

        cached = await app.state.store_group.cache.get("calendar:u1:2025-03-01:2025-03-15")
        assert cached is not None


class TestPatterns:
    async def test_lists_by_confidence(self, app, client: AsyncClient):
        service = app.state.orchestrator.task_service
        await service.store_pattern("u1", "completion_time", {"sampleSize": 6}, 0.6)
        await service.store_pattern("u1", "ai_insights", {"insights": []}, 0.9)
        await service.store_pattern("u2", "completion_time", {}, 0.99)

        resp = await client.get("/api/patterns", params={"user_id": "u1"})

        assert resp.status_code == 200
        patterns = resp.json()["patterns"]
        assert [p["pattern_type"] for p in patterns] == ["ai_insights", "completion_time"]
        assert patterns[1]["sample_size"] == 6

    async def test_filters_by_type(self, app, client: AsyncClient):
        service = app.state.orchestrator.task_service
        await service.store_pattern("u1", "completion_time", {}, 0.6)
        await service.store_pattern("u1", "ai_insights", {}, 0.9)

        resp = await client.get(
            "/api/patterns", params={"user_id": "u1", "pattern_type": "completion_time"}
        )

        assert [p["pattern_type"] for p in resp.json()["patterns"]] == ["completion_time"]
