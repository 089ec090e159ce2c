"""PatternStore SQLite 实现

(user_id, pattern_type) 唯一：写入即 upsert，不同 pattern_type 的写入互不影响，
因此调度/复杂度/洞察三类模式可以任意顺序、重复写入。
"""

from datetime import UTC, datetime
from typing import Any

import aiosqlite

from ..models.score import TaskPattern
from .serialization import dumps, from_iso, loads, row_to_dict, to_iso

_PATTERN_COLUMNS = (
    "user_id",
    "pattern_type",
    "pattern_data",
    "confidence_score",
    "sample_size",
    "tags",
    "conditions",
    "created_at",
    "updated_at",
)


class SqlitePatternStore:
    """TaskPattern 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def upsert_pattern(
        self,
        user_id: str,
        pattern_type: str,
        pattern_data: dict[str, Any],
        confidence: float,
        sample_size: int,
    ) -> None:
        """写入或覆盖模式（不自动提交）"""
        now = to_iso(datetime.now(UTC))
        await self._conn.execute(
            """
            INSERT INTO task_patterns (user_id, pattern_type, pattern_data,
                                       confidence_score, sample_size,
                                       created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, pattern_type) DO UPDATE SET
                pattern_data = excluded.pattern_data,
                confidence_score = excluded.confidence_score,
                sample_size = excluded.sample_size,
                updated_at = excluded.updated_at
            """,
            (
                user_id,
                str(pattern_type),
                dumps(pattern_data),
                confidence,
                sample_size,
                now,
                now,
            ),
        )

    async def get_patterns(
        self,
        user_id: str,
        pattern_type: str | None = None,
    ) -> list[TaskPattern]:
        """查询用户模式，按置信度、更新时间倒序"""
        sql = f"SELECT {', '.join(_PATTERN_COLUMNS)} FROM task_patterns WHERE user_id = ?"
        params: tuple = (user_id,)
        if pattern_type:
            sql += " AND pattern_type = ?"
            params = (user_id, pattern_type)
        sql += " ORDER BY confidence_score DESC, updated_at DESC"

        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_pattern(row) for row in rows]

    @staticmethod
    def _row_to_pattern(row: aiosqlite.Row) -> TaskPattern:
        data = row_to_dict(_PATTERN_COLUMNS, row)
        data["pattern_data"] = loads(data["pattern_data"], {})
        data["tags"] = loads(data["tags"], [])
        data["conditions"] = loads(data["conditions"], {})
        data["created_at"] = from_iso(data["created_at"])
        data["updated_at"] = from_iso(data["updated_at"])
        return TaskPattern(**data)
