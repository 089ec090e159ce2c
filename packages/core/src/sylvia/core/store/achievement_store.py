"""AchievementStore SQLite 实现

achievements 为静态目录（slug 主键，conditions 为 JSON 描述符，可为空）；
user_achievements 为写一次集合：(user_id, slug) 主键 + INSERT OR IGNORE，永不撤销。
"""

from datetime import UTC, datetime

import aiosqlite

from ..models.achievement import (
    Achievement,
    AchievementCondition,
    ConditionClause,
    UserAchievement,
)
from .serialization import from_iso, loads, to_iso


def _when(*clauses: tuple[str, str, float | bool]) -> AchievementCondition:
    return AchievementCondition(
        all=[ConditionClause(metric=m, op=op, value=v) for m, op, v in clauses]
    )


# 默认成就目录
DEFAULT_ACHIEVEMENTS: list[Achievement] = [
    Achievement(
        slug="first_blood",
        name="First Blood",
        description="Complete your first task",
        icon="🎯",
        xp_threshold=0,
        conditions=_when(("tasks_completed", "==", 1)),
    ),
    Achievement(
        slug="marathon_5",
        name="Marathon",
        description="Complete 5 tasks in one day",
        icon="🏃‍♂️",
        xp_threshold=50,
        conditions=_when(("completed_today", ">=", 5)),
    ),
    Achievement(
        slug="innovator_50",
        name="Innovator",
        description="Maintain high innovation scores",
        icon="💡",
        xp_threshold=100,
        conditions=_when(("innovation", ">=", 4), ("total_xp", ">=", 50)),
    ),
    Achievement(
        slug="speed_demon",
        name="Speed Demon",
        description="Consistently beat time estimates",
        icon="⚡",
        xp_threshold=150,
        conditions=_when(("speed", ">=", 4), ("on_time", "==", True)),
    ),
    Achievement(
        slug="perfectionist",
        name="Perfectionist",
        description="Maintain high quality scores",
        icon="✨",
        xp_threshold=200,
        conditions=_when(("quality", "==", 5)),
    ),
    Achievement(
        slug="night_owl",
        name="Night Owl",
        description="Complete tasks after 10 PM",
        icon="🦉",
        xp_threshold=25,
        conditions=_when(("completion_hour", ">=", 22)),
    ),
    Achievement(
        slug="early_bird",
        name="Early Bird",
        description="Complete tasks before 7 AM",
        icon="🐦",
        xp_threshold=25,
        conditions=_when(("completion_hour", "<", 7)),
    ),
    # 需要周计划完成度，暂无自动解锁规则
    Achievement(
        slug="week_warrior",
        name="Week Warrior",
        description="Complete all scheduled tasks for a week",
        icon="⚔️",
        xp_threshold=300,
        conditions=None,
    ),
]


class SqliteAchievementStore:
    """成就目录与用户成就的 SQLite 实现

    注意：写方法不自动提交事务，需由调用方管理事务。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def upsert_achievement(self, achievement: Achievement) -> None:
        conditions = (
            achievement.conditions.model_dump_json()
            if achievement.conditions is not None
            else None
        )
        await self._conn.execute(
            """
            INSERT INTO achievements (slug, name, description, icon, xp_threshold, conditions)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (slug) DO UPDATE SET
                name = excluded.name,
                description = excluded.description,
                icon = excluded.icon,
                xp_threshold = excluded.xp_threshold,
                conditions = excluded.conditions
            """,
            (
                achievement.slug,
                achievement.name,
                achievement.description,
                achievement.icon,
                achievement.xp_threshold,
                conditions,
            ),
        )

    async def seed_defaults(self) -> int:
        """写入默认目录（已存在的 slug 会被覆盖为默认定义）"""
        for achievement in DEFAULT_ACHIEVEMENTS:
            await self.upsert_achievement(achievement)
        return len(DEFAULT_ACHIEVEMENTS)

    async def list_achievements(self) -> list[Achievement]:
        cursor = await self._conn.execute(
            """
            SELECT slug, name, description, icon, xp_threshold, conditions
            FROM achievements
            ORDER BY COALESCE(xp_threshold, 0) ASC, slug ASC
            """
        )
        rows = await cursor.fetchall()
        return [
            Achievement(
                slug=row[0],
                name=row[1],
                description=row[2],
                icon=row[3],
                xp_threshold=row[4],
                conditions=(
                    AchievementCondition(**loads(row[5], {})) if row[5] else None
                ),
            )
            for row in rows
        ]

    async def get_earned_slugs(self, user_id: str) -> set[str]:
        cursor = await self._conn.execute(
            "SELECT slug FROM user_achievements WHERE user_id = ?",
            (user_id,),
        )
        rows = await cursor.fetchall()
        return {row[0] for row in rows}

    async def list_user_achievements(self, user_id: str) -> list[UserAchievement]:
        cursor = await self._conn.execute(
            """
            SELECT user_id, slug, earned_at FROM user_achievements
            WHERE user_id = ? ORDER BY earned_at ASC
            """,
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [
            UserAchievement(user_id=row[0], slug=row[1], earned_at=from_iso(row[2]))
            for row in rows
        ]

    async def record_unlock(self, user_id: str, slug: str) -> bool:
        """记录解锁；已拥有时不做任何修改

        Returns:
            True 表示本次为新解锁
        """
        cursor = await self._conn.execute(
            """
            INSERT OR IGNORE INTO user_achievements (user_id, slug, earned_at)
            VALUES (?, ?, ?)
            """,
            (user_id, slug, to_iso(datetime.now(UTC))),
        )
        return cursor.rowcount > 0
