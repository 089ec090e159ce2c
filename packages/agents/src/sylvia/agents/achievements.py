"""成就解锁评估 -- 由目录中的 conditions 描述符驱动

描述符形如 {"all": [{"metric": "quality", "op": "==", "value": 5}]}，
全部子句对 AchievementContext 成立才解锁。新增成就只需写入目录，无需改代码。
conditions 为空的成就（如 week_warrior）永远不会自动解锁。
"""

import operator
from collections.abc import Iterable

from pydantic import BaseModel, Field
from sylvia.core.models import Achievement, AchievementCondition, ConditionClause

_OPS = {
    "==": operator.eq,
    "!=": operator.ne,
    ">=": operator.ge,
    ">": operator.gt,
    "<=": operator.le,
    "<": operator.lt,
}


class AchievementContext(BaseModel):
    """评估时刻的用户统计与本次评分"""

    tasks_completed: int = Field(description="本次评估后的累计完成数")
    total_xp: int = Field(description="本次评估后的累计 XP")
    difficulty: int
    innovation: int
    quality: int
    speed: int
    on_time: bool
    completion_hour: int = Field(ge=0, le=23, description="完成时刻（UTC 小时）")
    completed_today: int = Field(ge=0, description="完成当天（UTC）的累计完成数")


def _clause_holds(clause: ConditionClause, ctx: AchievementContext) -> bool:
    actual = getattr(ctx, clause.metric, None)
    if actual is None:
        # 未知指标不解锁
        return False
    return bool(_OPS[clause.op](actual, clause.value))


def condition_holds(condition: AchievementCondition | None, ctx: AchievementContext) -> bool:
    if condition is None or not condition.all:
        return False
    return all(_clause_holds(clause, ctx) for clause in condition.all)


def evaluate_achievements(
    catalog: Iterable[Achievement],
    earned: set[str],
    ctx: AchievementContext,
) -> list[Achievement]:
    """返回本次应新解锁的成就（已获得的跳过）"""
    return [
        achievement
        for achievement in catalog
        if achievement.slug not in earned and condition_holds(achievement.conditions, ctx)
    ]
