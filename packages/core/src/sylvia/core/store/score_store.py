"""ScoreStore SQLite 实现

task_scores 以 task_id 为主键：重复评分走 ON CONFLICT upsert，始终只保留一行。
注意：此处方法不自动提交事务，需由调用方管理事务。
"""

from datetime import UTC, datetime

import aiosqlite

from ..models.score import ScoreInput, TaskScore
from .serialization import from_iso, row_to_dict, to_iso

_SCORE_COLUMNS = (
    "task_id",
    "difficulty",
    "innovation",
    "quality",
    "speed",
    "overall_score",
    "xp_earned",
    "user_satisfaction",
    "user_notes",
    "scored_at",
)


class SqliteScoreStore:
    """TaskScore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def upsert_score(self, task_id: str, score: ScoreInput) -> None:
        """写入或覆盖评分"""
        await self._conn.execute(
            """
            INSERT INTO task_scores (task_id, difficulty, innovation, quality, speed,
                                     overall_score, xp_earned, user_satisfaction,
                                     user_notes, scored_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (task_id) DO UPDATE SET
                difficulty = excluded.difficulty,
                innovation = excluded.innovation,
                quality = excluded.quality,
                speed = excluded.speed,
                overall_score = excluded.overall_score,
                xp_earned = excluded.xp_earned,
                user_satisfaction = excluded.user_satisfaction,
                user_notes = excluded.user_notes,
                scored_at = excluded.scored_at
            """,
            (
                task_id,
                score.difficulty,
                score.innovation,
                score.quality,
                score.speed,
                score.overall_score,
                score.xp_earned,
                score.user_satisfaction,
                score.user_notes,
                to_iso(datetime.now(UTC)),
            ),
        )

    async def get_score(self, task_id: str) -> TaskScore | None:
        cursor = await self._conn.execute(
            f"SELECT {', '.join(_SCORE_COLUMNS)} FROM task_scores WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        data = row_to_dict(_SCORE_COLUMNS, row)
        data["scored_at"] = from_iso(data["scored_at"])
        return TaskScore(**data)

    async def count_scores(self, task_id: str) -> int:
        """评分行数（upsert 语义下恒为 0 或 1）"""
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM task_scores WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0
