"""ActivityStore 测试 -- 日历条目区间查询与会话读写"""

from datetime import UTC, date, datetime, timedelta

from sylvia.core.models import CalendarEntry, UserSession

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=UTC)


def _entry(entry_id: str, day: date, user_id: str = "u1", **fields) -> CalendarEntry:
    return CalendarEntry(entry_id=entry_id, user_id=user_id, date=day, created_at=NOW, **fields)


class TestCalendarEntries:
    async def test_range_is_inclusive(self, store_group):
        store = store_group.activity_store
        async with store_group.tx.atomic():
            await store.add_calendar_entry(_entry("e1", date(2025, 3, 1), energy_level=4))
            await store.add_calendar_entry(_entry("e2", date(2025, 3, 5), actual_hours=2.5))
            await store.add_calendar_entry(_entry("e3", date(2025, 3, 6)))
            await store.add_calendar_entry(_entry("e4", date(2025, 3, 2), user_id="u2"))

        entries = await store.list_calendar_entries("u1", date(2025, 3, 1), date(2025, 3, 5))

        assert [e.entry_id for e in entries] == ["e1", "e2"]
        assert entries[0].energy_level == 4
        assert entries[0].date == date(2025, 3, 1)
        assert entries[1].actual_hours == 2.5
        assert entries[1].created_at == NOW


class TestSessions:
    async def test_sessions_since_newest_first(self, store_group):
        store = store_group.activity_store
        async with store_group.tx.atomic():
            for offset, session_id in ((1, "s-old"), (3, "s-older"), (0, "s-new")):
                await store.add_session(
                    UserSession(
                        session_id=session_id,
                        user_id="u1",
                        started_at=NOW - timedelta(days=offset),
                        ended_at=NOW - timedelta(days=offset) + timedelta(hours=2),
                        focus_hours=1.5,
                        metadata={"device": "laptop"},
                    )
                )

        sessions = await store.list_sessions_since("u1", NOW - timedelta(days=2))

        assert [s.session_id for s in sessions] == ["s-new", "s-old"]
        assert sessions[0].metadata == {"device": "laptop"}
        assert sessions[0].ended_at == NOW + timedelta(hours=2)
        assert sessions[0].day_of_week == 1
        assert sessions[0].hour_of_day == 9
