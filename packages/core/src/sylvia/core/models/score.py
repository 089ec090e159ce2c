"""TaskScore / TaskPattern Domain Model

TaskScore 与已完成任务一一对应，按 task_id upsert（重复评分覆盖旧值）。
TaskPattern 按 (user_id, pattern_type) upsert，表示持续修正的用户行为统计。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class DimensionScores(BaseModel):
    """四个评估维度（1-5）"""

    difficulty: int = Field(ge=1, le=5)
    innovation: int = Field(ge=1, le=5)
    quality: int = Field(ge=1, le=5)
    speed: int = Field(ge=1, le=5)


class TaskScore(DimensionScores):
    """TaskScore 数据模型"""

    task_id: str = Field(description="关联的 Task ID（唯一）")
    overall_score: int = Field(ge=0, le=100, description="加权总分 0-100")
    xp_earned: int = Field(default=0, ge=0, description="获得的经验值")
    user_satisfaction: int | None = Field(default=None, ge=1, le=5)
    user_notes: str | None = Field(default=None)
    scored_at: datetime | None = Field(default=None, description="评分时间")


class ScoreInput(DimensionScores):
    """score_task 的输入字段"""

    overall_score: int = Field(ge=0, le=100)
    xp_earned: int = Field(default=0, ge=0)
    user_satisfaction: int | None = Field(default=None, ge=1, le=5)
    user_notes: str | None = None


class ScoreOutcome(BaseModel):
    """score_task 的写入结果"""

    task_id: str
    user_id: str
    first_scoring: bool = Field(description="是否为该任务的首次评分")
    xp_delta: int = Field(description="本次对用户累计 XP 的增量（可为负）")
    total_xp: int = Field(description="写入后的用户累计 XP")


class TaskPattern(BaseModel):
    """TaskPattern 数据模型"""

    user_id: str
    pattern_type: str
    pattern_data: dict[str, Any] = Field(default_factory=dict, description="不透明 JSON 载荷")
    confidence_score: float = Field(ge=0.0, le=1.0)
    sample_size: int = Field(default=1, ge=0)
    tags: list[str] = Field(default_factory=list)
    conditions: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ScoredTask(BaseModel):
    """已完成任务与其评分的联结视图（分析器与日历聚合使用）"""

    task_id: str
    user_id: str
    parent_id: str | None = None
    title: str = ""
    status: str = ""
    estimated_hours: float | None = None
    actual_hours: float | None = None
    due_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    difficulty: int | None = None
    innovation: int | None = None
    quality: int | None = None
    speed: int | None = None
    overall_score: int | None = None
    xp_earned: int | None = None
    user_satisfaction: int | None = None


class TimeMetrics(BaseModel):
    """完成耗时指标

    speed_ratio = 预估工时 / 实际工时；speed_ratio >= 0.8 视为按时完成。
    """

    estimated_hours: float
    actual_hours: float
    speed_ratio: float
    was_on_time: bool
