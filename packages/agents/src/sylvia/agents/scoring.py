"""评分计算 -- 纯函数

overall_score: 四维加权（difficulty 3 / innovation 3 / quality 4 / speed 2），
折算到 0-100 后四舍五入（half-up）。{5,5,5,5} -> 100，{1,1,1,1} -> 20。
compute_xp: round(overall / 10) + 各项独立叠加的奖励。
"""

import math
from collections.abc import Sequence
from datetime import datetime
from fractions import Fraction

from sylvia.core.models import DimensionScores, ScoredTask, Task, TimeMetrics

WEIGHTS: dict[str, int] = {
    "difficulty": 3,
    "innovation": 3,
    "quality": 4,
    "speed": 2,
}
_TOTAL_WEIGHT = sum(WEIGHTS.values())

# speed_ratio >= 0.8 视为按时完成（实际耗时不超过预估的 125%）
ON_TIME_RATIO = 0.8

# 实际耗时下限（1 分钟），避免瞬时完成导致除零
_MIN_ACTUAL_HOURS = 1 / 60

DEFAULT_DIMENSION = 3.0


def round_half_up(value: Fraction | float) -> int:
    return math.floor(Fraction(value) + Fraction(1, 2))


def overall_score(scores: DimensionScores) -> int:
    weighted = sum(getattr(scores, dim) * w for dim, w in WEIGHTS.items())
    return round_half_up(Fraction(weighted * 20, _TOTAL_WEIGHT))


def compute_xp(
    overall: int,
    scores: DimensionScores,
    was_on_time: bool,
    has_subtasks: bool,
) -> int:
    xp = round_half_up(Fraction(overall, 10))
    if scores.innovation >= 5:
        xp += 3
    if scores.quality >= 5:
        xp += 2
    if was_on_time:
        xp += 1
    if has_subtasks:
        xp += 1
    return xp


def compute_time_metrics(task: Task, completed_at: datetime | None = None) -> TimeMetrics:
    """计算完成耗时指标

    实际耗时 = completed_at - (started_at 或 created_at)；缺少完成时间时按预估计。
    预估缺失（或为 0）时按 1 小时计。
    """
    estimated = task.estimated_hours or 1.0
    end = task.completed_at or completed_at
    start = task.started_at or task.created_at

    if end is not None:
        actual = max((end - start).total_seconds() / 3600, 0.0)
    else:
        actual = estimated

    speed_ratio = estimated / max(actual, _MIN_ACTUAL_HOURS)
    return TimeMetrics(
        estimated_hours=estimated,
        actual_hours=actual,
        speed_ratio=speed_ratio,
        was_on_time=speed_ratio >= ON_TIME_RATIO,
    )


def rolling_averages(recent: Sequence[ScoredTask]) -> dict[str, float]:
    """近期任务四维均值；缺失维度按 3 计，无近期任务时全部为 3.0"""
    if not recent:
        return {dim: DEFAULT_DIMENSION for dim in WEIGHTS}
    return {
        dim: sum(
            getattr(t, dim) if getattr(t, dim) is not None else DEFAULT_DIMENSION
            for t in recent
        )
        / len(recent)
        for dim in WEIGHTS
    }
