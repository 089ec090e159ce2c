"""Achievement Domain Model

成就目录为静态数据；解锁规则由 conditions 描述符驱动（而非代码中的 slug 分支）。
UserAchievement 为写一次集合成员，永不撤销。
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ConditionOp = Literal["==", "!=", ">=", ">", "<=", "<"]


class ConditionClause(BaseModel):
    """单个比较子句：metric op value"""

    metric: str = Field(description="AchievementContext 中的指标名")
    op: ConditionOp = Field(default=">=")
    value: float | bool


class AchievementCondition(BaseModel):
    """解锁条件描述符 -- all 中全部子句成立才解锁"""

    all: list[ConditionClause] = Field(default_factory=list)


class Achievement(BaseModel):
    """成就目录条目"""

    slug: str
    name: str
    description: str = ""
    icon: str = ""
    xp_threshold: int | None = None
    conditions: AchievementCondition | None = Field(
        default=None,
        description="None 表示没有自动解锁规则",
    )


class UserAchievement(BaseModel):
    """用户已获得的成就"""

    user_id: str
    slug: str
    earned_at: datetime
