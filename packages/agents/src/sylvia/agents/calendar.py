"""日历分析读模型

按日期区间聚合任务、精力日志与评分，给出时段表现、速度趋势与下一个高效时段，
并合并 ML 分析缓存的推荐包。结果缓存 CALENDAR_CACHE_TTL_S 秒（只写，读取总是重新计算）。
"""

import json
from collections.abc import Callable, Sequence
from datetime import UTC, date, datetime, time, timedelta
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sylvia.core.config import CALENDAR_CACHE_TTL_S, recommendations_key
from sylvia.core.models import CalendarEntry, ScoredTask, TaskStatus
from sylvia.core.store import StoreGroup

log = structlog.get_logger()

VELOCITY_WINDOW_DAYS = 28
DEFAULT_HOUR = 9
DEFAULT_ENERGY = 3
MIN_SLOT_SAMPLES = 2
TOP_SLOTS = 3
SLOT_CONFIDENCE_SAMPLES = 5

VelocityDirection = Literal["up", "down", "stable"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CalendarSummary(_CamelModel):
    total_tasks: int
    completed_tasks: int
    completion_rate: float = Field(description="百分比 0-100")
    total_xp: int
    avg_score: float


class HourlyPerformance(_CamelModel):
    count: int
    avg_score: float
    avg_xp: float

    @property
    def performance(self) -> float:
        return (self.avg_score + self.avg_xp * 10) / 2


class OptimalHour(_CamelModel):
    hour: int
    performance: float
    sample_size: int


class NextSlot(_CamelModel):
    day: Literal["today", "tomorrow"]
    hour: int
    confidence: float


class Velocity(_CamelModel):
    trend: VelocityDirection
    recent_completions: int
    older_completions: int
    recent_daily_avg: float
    older_daily_avg: float


class CalendarPatterns(_CamelModel):
    optimal_hours: list[OptimalHour] = Field(default_factory=list)
    hourly_performance: dict[int, HourlyPerformance] = Field(default_factory=dict)
    avg_difficulty: float = 3.0
    next_optimal_slot: NextSlot
    velocity_trend: VelocityDirection
    velocity: Velocity


class CalendarAnalyticsResponse(_CamelModel):
    tasks_by_date: dict[str, list[ScoredTask]] = Field(default_factory=dict)
    energy_levels: dict[str, int] = Field(default_factory=dict)
    logged_hours: dict[str, float] = Field(default_factory=dict)
    summary: CalendarSummary
    patterns: CalendarPatterns
    ml: dict[str, Any] | None = None


def calendar_date(task: ScoredTask) -> date:
    """日历归属日期：due_at > completed_at > created_at"""
    moment = task.due_at or task.completed_at or task.created_at
    return moment.astimezone(UTC).date()


def velocity_trend(recent: int, older: int) -> VelocityDirection:
    """两个等长窗口的完成总数比较：>= 1.15 倍为 up，<= 0.85 倍为 down"""
    if recent == 0 and older == 0:
        return "stable"
    if recent * 100 >= older * 115:
        return "up"
    if recent * 100 <= older * 85:
        return "down"
    return "stable"


def hourly_performance(completed: Sequence[ScoredTask]) -> dict[int, HourlyPerformance]:
    buckets: dict[int, list[ScoredTask]] = {}
    for task in completed:
        hour = task.completed_at.astimezone(UTC).hour if task.completed_at else DEFAULT_HOUR
        buckets.setdefault(hour, []).append(task)
    return {
        hour: HourlyPerformance(
            count=len(bucket),
            avg_score=sum(t.overall_score or 0 for t in bucket) / len(bucket),
            avg_xp=sum(t.xp_earned or 0 for t in bucket) / len(bucket),
        )
        for hour, bucket in sorted(buckets.items())
    }


def optimal_hours(performance: dict[int, HourlyPerformance]) -> list[OptimalHour]:
    ranked = sorted(
        (
            OptimalHour(hour=hour, performance=perf.performance, sample_size=perf.count)
            for hour, perf in performance.items()
            if perf.count >= MIN_SLOT_SAMPLES
        ),
        key=lambda slot: slot.performance,
        reverse=True,
    )
    return ranked[:TOP_SLOTS]


def next_optimal_slot(slots: Sequence[OptimalHour], current_hour: int) -> NextSlot:
    """排名顺序中第一个晚于当前小时的时段，否则回绕到排名第一的时段（明天）"""
    if not slots:
        chosen = OptimalHour(hour=DEFAULT_HOUR, performance=50.0, sample_size=1)
    else:
        chosen = next((s for s in slots if s.hour > current_hour), slots[0])
    return NextSlot(
        day="today" if chosen.hour > current_hour else "tomorrow",
        hour=chosen.hour,
        confidence=min(chosen.sample_size / SLOT_CONFIDENCE_SAMPLES, 1.0),
    )


def _energy_and_hours(
    entries: Sequence[CalendarEntry],
) -> tuple[dict[str, int], dict[str, float]]:
    by_day: dict[str, list[CalendarEntry]] = {}
    for entry in entries:
        by_day.setdefault(entry.date.isoformat(), []).append(entry)

    energy: dict[str, int] = {}
    hours: dict[str, float] = {}
    for day, bucket in sorted(by_day.items()):
        levels = [e.energy_level for e in bucket if e.energy_level is not None]
        energy[day] = round(sum(levels) / len(levels)) if levels else DEFAULT_ENERGY
        hours[day] = sum(e.actual_hours or 0.0 for e in bucket)
    return energy, hours


class CalendarAnalytics:
    """日历分析服务"""

    def __init__(
        self,
        stores: StoreGroup,
        clock: Callable[[], datetime] | None = None,
        cache_ttl_s: int = CALENDAR_CACHE_TTL_S,
    ) -> None:
        self._stores = stores
        self._clock = clock or (lambda: datetime.now(UTC))
        self._cache_ttl_s = cache_ttl_s

    async def get_calendar_analytics(
        self,
        user_id: str,
        start: date,
        end: date,
        now: datetime | None = None,
    ) -> CalendarAnalyticsResponse:
        now = (now or self._clock()).astimezone(UTC)
        tasks = await self._stores.task_store.list_calendar_tasks(user_id, start, end)

        tasks_by_date: dict[str, list[ScoredTask]] = {}
        for task in sorted(tasks, key=lambda t: (calendar_date(t), t.created_at)):
            tasks_by_date.setdefault(calendar_date(task).isoformat(), []).append(task)

        entries = await self._stores.activity_store.list_calendar_entries(user_id, start, end)
        energy, logged = _energy_and_hours(entries)

        completed = [t for t in tasks if t.status == TaskStatus.DONE]
        summary = CalendarSummary(
            total_tasks=len(tasks),
            completed_tasks=len(completed),
            completion_rate=len(completed) / len(tasks) * 100 if tasks else 0.0,
            total_xp=sum(t.xp_earned or 0 for t in completed),
            avg_score=(
                sum(t.overall_score or 0 for t in completed) / len(completed) if completed else 0.0
            ),
        )

        performance = hourly_performance(completed)
        slots = optimal_hours(performance)
        velocity = await self._velocity(user_id, now)
        patterns = CalendarPatterns(
            optimal_hours=slots,
            hourly_performance=performance,
            avg_difficulty=(
                sum(t.difficulty or 3 for t in completed) / len(completed) if completed else 3.0
            ),
            next_optimal_slot=next_optimal_slot(slots, now.hour),
            velocity_trend=velocity.trend,
            velocity=velocity,
        )

        cached_ml = await self._stores.cache.get(recommendations_key(user_id))
        response = CalendarAnalyticsResponse(
            tasks_by_date=tasks_by_date,
            energy_levels=energy,
            logged_hours=logged,
            summary=summary,
            patterns=patterns,
            ml=json.loads(cached_ml) if cached_ml else None,
        )

        async with self._stores.tx.atomic():
            await self._stores.cache.setex(
                f"calendar:{user_id}:{start.isoformat()}:{end.isoformat()}",
                self._cache_ttl_s,
                response.model_dump_json(by_alias=True),
            )

        await log.ainfo(
            "calendar_analytics_built",
            user_id=user_id,
            start=start.isoformat(),
            end=end.isoformat(),
            tasks=len(tasks),
            velocity=velocity.trend,
        )
        return response

    async def _velocity(self, user_id: str, now: datetime) -> Velocity:
        """最近 28 天（含今天）与之前 28 天的完成数比较，按 UTC 整日划分窗口"""
        today = now.astimezone(UTC).date()
        recent_start = today - timedelta(days=VELOCITY_WINDOW_DAYS - 1)
        older_start = recent_start - timedelta(days=VELOCITY_WINDOW_DAYS)
        per_day = await self._stores.task_store.count_completions_by_day(
            user_id, datetime.combine(older_start, time.min, tzinfo=UTC)
        )
        recent = sum(n for day, n in per_day.items() if recent_start <= day <= today)
        older = sum(n for day, n in per_day.items() if older_start <= day < recent_start)
        return Velocity(
            trend=velocity_trend(recent, older),
            recent_completions=recent,
            older_completions=older,
            recent_daily_avg=recent / VELOCITY_WINDOW_DAYS,
            older_daily_avg=older / VELOCITY_WINDOW_DAYS,
        )
