"""日历分析单元测试"""

import json
from datetime import UTC, date, datetime

import pytest
from sylvia.agents.calendar import (
    CalendarAnalytics,
    OptimalHour,
    next_optimal_slot,
    velocity_trend,
)
from sylvia.core.config import recommendations_key
from sylvia.core.models import CalendarEntry, TaskCreate

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)
START = date(2025, 3, 1)
END = date(2025, 3, 15)


class TestVelocityTrend:
    @pytest.mark.parametrize(
        ("recent", "older", "expected"),
        [
            (0, 0, "stable"),
            (23, 20, "up"),
            (22, 20, "stable"),
            (17, 20, "down"),
            (18, 20, "stable"),
            (1, 0, "up"),
            (0, 3, "down"),
        ],
    )
    def test_window_totals(self, recent, older, expected):
        assert velocity_trend(recent, older) == expected


class TestNextOptimalSlot:
    SLOTS = [
        OptimalHour(hour=9, performance=90, sample_size=5),
        OptimalHour(hour=15, performance=80, sample_size=2),
        OptimalHour(hour=11, performance=70, sample_size=3),
    ]

    def test_first_ranked_slot_after_now(self):
        slot = next_optimal_slot(self.SLOTS, current_hour=10)
        assert (slot.day, slot.hour) == ("today", 15)
        assert slot.confidence == pytest.approx(0.4)

    def test_wraps_to_best_slot_tomorrow(self):
        slot = next_optimal_slot(self.SLOTS, current_hour=16)
        assert (slot.day, slot.hour, slot.confidence) == ("tomorrow", 9, 1.0)

    def test_default_slot(self):
        slot = next_optimal_slot([], current_hour=7)
        assert (slot.day, slot.hour) == ("today", 9)
        assert slot.confidence == pytest.approx(0.2)


@pytest.fixture
def calendar(store_group) -> CalendarAnalytics:
    return CalendarAnalytics(store_group, clock=lambda: NOW)


class TestCalendarAnalytics:
    async def test_aggregates_range(self, calendar, task_service, make_completed, make_score):
        pending = await task_service.create_task(
            "u1", TaskCreate(title="交税", due_at=datetime(2025, 3, 12, 17, tzinfo=UTC))
        )
        await make_completed(
            "u1", datetime(2025, 3, 5, 9, tzinfo=UTC), score=make_score(overall=80, xp=10)
        )
        await make_completed(
            "u1", datetime(2025, 3, 6, 9, 30, tzinfo=UTC), score=make_score(overall=60, xp=6)
        )
        # 窗口外的旧完成记录，只参与速度趋势
        await make_completed("u1", datetime(2025, 1, 20, 9, tzinfo=UTC))

        stores = task_service.stores
        async with stores.tx.atomic():
            for entry_id, day, energy, hours in [
                ("e1", date(2025, 3, 5), 4, 1.5),
                ("e2", date(2025, 3, 5), 2, 2.0),
                ("e3", date(2025, 3, 6), 5, None),
            ]:
                await stores.activity_store.add_calendar_entry(
                    CalendarEntry(
                        entry_id=entry_id,
                        user_id="u1",
                        date=day,
                        energy_level=energy,
                        actual_hours=hours,
                        created_at=NOW,
                    )
                )

        response = await calendar.get_calendar_analytics("u1", START, END)

        assert sorted(response.tasks_by_date) == ["2025-03-05", "2025-03-06", "2025-03-12"]
        assert response.tasks_by_date["2025-03-12"][0].task_id == pending.task_id
        assert response.energy_levels == {"2025-03-05": 3, "2025-03-06": 5}
        assert response.logged_hours == {"2025-03-05": 3.5, "2025-03-06": 0.0}

        summary = response.summary
        assert (summary.total_tasks, summary.completed_tasks) == (3, 2)
        assert summary.completion_rate == pytest.approx(200 / 3)
        assert summary.total_xp == 16
        assert summary.avg_score == pytest.approx(70)

        patterns = response.patterns
        assert [h.hour for h in patterns.optimal_hours] == [9]
        assert patterns.optimal_hours[0].performance == pytest.approx(75)
        assert (patterns.next_optimal_slot.day, patterns.next_optimal_slot.hour) == (
            "tomorrow",
            9,
        )
        assert patterns.velocity_trend == "up"
        assert patterns.velocity.recent_completions == 2
        assert patterns.velocity.older_completions == 1
        assert response.ml is None

    async def test_snapshot_cached_and_ml_merged(self, calendar, store_group):
        async with store_group.tx.atomic():
            await store_group.cache.setex(
                recommendations_key("u1"), 3600, json.dumps({"insights": []})
            )

        response = await calendar.get_calendar_analytics("u1", START, END)

        assert response.ml == {"insights": []}
        assert response.summary.total_tasks == 0
        assert response.patterns.velocity_trend == "stable"

        key = "calendar:u1:2025-03-01:2025-03-15"
        cached = json.loads(await store_group.cache.get(key))
        assert cached["summary"]["totalTasks"] == 0
        assert "nextOptimalSlot" in cached["patterns"]
        assert await store_group.cache.ttl(key) == 300

    async def test_velocity_windows_split_on_whole_days(self, calendar, make_completed):
        """最近窗口为含今天在内的 28 个整日，边界日归入之前的窗口"""
        for completed_at in [
            datetime(2025, 2, 11, 1, tzinfo=UTC),
            datetime(2025, 2, 10, 23, tzinfo=UTC),
            datetime(2025, 1, 14, 8, tzinfo=UTC),
            datetime(2025, 1, 13, 8, tzinfo=UTC),
        ]:
            await make_completed("u1", completed_at)

        velocity = (await calendar.get_calendar_analytics("u1", START, END)).patterns.velocity

        assert velocity.recent_completions == 1
        assert velocity.older_completions == 2
        assert velocity.older_daily_avg == pytest.approx(2 / 28)
