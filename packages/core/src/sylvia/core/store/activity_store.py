"""ActivityStore SQLite 实现 -- calendar_entries / user_sessions

两类日志只作为日历聚合与 ML 分析的输入，写入后不再修改。
注意：写方法不自动提交事务，需由调用方管理事务。
"""

from datetime import date, datetime

import aiosqlite

from ..models.activity import CalendarEntry, UserSession
from .serialization import dumps, from_iso, loads, row_to_dict, to_iso

_ENTRY_COLUMNS = (
    "entry_id",
    "user_id",
    "task_id",
    "date",
    "time_blocked_hours",
    "actual_hours",
    "energy_level",
    "focus_score",
    "interruptions",
    "created_at",
)

_SESSION_COLUMNS = (
    "session_id",
    "user_id",
    "started_at",
    "ended_at",
    "tasks_created",
    "tasks_completed",
    "focus_hours",
    "break_hours",
    "session_type",
    "metadata",
)


class SqliteActivityStore:
    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_calendar_entry(self, entry: CalendarEntry) -> None:
        await self._conn.execute(
            f"""
            INSERT INTO calendar_entries ({', '.join(_ENTRY_COLUMNS)})
            VALUES ({', '.join('?' for _ in _ENTRY_COLUMNS)})
            """,
            (
                entry.entry_id,
                entry.user_id,
                entry.task_id,
                entry.date.isoformat(),
                entry.time_blocked_hours,
                entry.actual_hours,
                entry.energy_level,
                entry.focus_score,
                entry.interruptions,
                to_iso(entry.created_at),
            ),
        )

    async def list_calendar_entries(
        self,
        user_id: str,
        start: date,
        end: date,
    ) -> list[CalendarEntry]:
        """查询 [start, end] 闭区间内的日历条目"""
        cursor = await self._conn.execute(
            f"""
            SELECT {', '.join(_ENTRY_COLUMNS)} FROM calendar_entries
            WHERE user_id = ? AND date BETWEEN ? AND ?
            ORDER BY date ASC, created_at ASC
            """,
            (user_id, start.isoformat(), end.isoformat()),
        )
        rows = await cursor.fetchall()
        entries = []
        for row in rows:
            data = row_to_dict(_ENTRY_COLUMNS, row)
            data["date"] = date.fromisoformat(data["date"])
            data["created_at"] = from_iso(data["created_at"])
            entries.append(CalendarEntry(**data))
        return entries

    async def add_session(self, session: UserSession) -> None:
        await self._conn.execute(
            f"""
            INSERT INTO user_sessions ({', '.join(_SESSION_COLUMNS)})
            VALUES ({', '.join('?' for _ in _SESSION_COLUMNS)})
            """,
            (
                session.session_id,
                session.user_id,
                to_iso(session.started_at),
                to_iso(session.ended_at),
                session.tasks_created,
                session.tasks_completed,
                session.focus_hours,
                session.break_hours,
                session.session_type,
                dumps(session.metadata),
            ),
        )

    async def list_sessions_since(self, user_id: str, since: datetime) -> list[UserSession]:
        cursor = await self._conn.execute(
            f"""
            SELECT {', '.join(_SESSION_COLUMNS)} FROM user_sessions
            WHERE user_id = ? AND started_at > ?
            ORDER BY started_at DESC
            """,
            (user_id, to_iso(since)),
        )
        rows = await cursor.fetchall()
        sessions = []
        for row in rows:
            data = row_to_dict(_SESSION_COLUMNS, row)
            data["started_at"] = from_iso(data["started_at"])
            data["ended_at"] = from_iso(data["ended_at"])
            data["metadata"] = loads(data["metadata"], {})
            sessions.append(UserSession(**data))
        return sessions
