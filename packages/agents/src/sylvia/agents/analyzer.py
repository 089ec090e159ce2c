"""ML Pattern Analyzer -- 用户行为模式分析

由 events:ml 上的 TASK_SCORED、每日分析或手动触发。统计部分是纯函数：
- analyze_completion_patterns: 完成时段（UTC 小时）与星期分布
- analyze_complexity_patterns: 按难度分组的耗时准确度与满意度
- generate_predictions: 相对当前时刻的下一个高效时段

统计结果 upsert 为 optimal_scheduling / complexity_handling 模式，
再由 LLM 生成 3-5 条洞察（ai_insights），最后整体缓存为推荐包。
"""

import json
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sylvia.core.config import ML_STREAM, recommendations_key
from sylvia.core.models import (
    AnalysisType,
    InsightCategory,
    InsightsGeneratedEvent,
    PatternType,
    ScoredTask,
    UserSession,
)
from sylvia.core.task_service import TaskService
from sylvia.provider.structured import StructuredFailure, StructuredGenerator
from ulid import ULID

from .config import AnalyzerSettings
from .prompts import insights_prompt
from .workflow import WorkflowRun, WorkflowRunner

log = structlog.get_logger()

MAX_INSIGHTS = 5
DEFAULT_PRODUCTIVITY = 50.0
DEFAULT_DIMENSION = 3
TIME_ACCURACY_CAP = 2.0
GROUP_CONFIDENCE_SAMPLES = 5


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HourlyStat(_CamelModel):
    hour: int = Field(ge=0, le=23)
    count: int
    avg_quality: float
    avg_speed: float


class DayStat(_CamelModel):
    day: int = Field(ge=0, le=6, description="0=周日")
    count: int
    avg_productivity: float


class CompletionPatterns(_CamelModel):
    optimal_hours: list[HourlyStat] = Field(default_factory=list)
    day_stats: dict[int, DayStat] = Field(default_factory=dict)
    hourly_stats: dict[int, HourlyStat] = Field(default_factory=dict)
    sample_size: int


class DifficultyGroup(_CamelModel):
    difficulty: int
    count: int
    measured: int = Field(description="有预估与实际工时的样本数")
    avg_time_accuracy: float | None = Field(description="min(预估/实际, 2) 的均值，无测量样本时为 None")
    avg_satisfaction: float
    confidence: float


class ComplexityPatterns(_CamelModel):
    difficulty_groups: dict[int, DifficultyGroup] = Field(default_factory=dict)
    sample_size: int


class ScheduledSlot(HourlyStat):
    hours_from_now: int
    recommendation_score: float


class Predictions(_CamelModel):
    next_optimal_slots: list[ScheduledSlot] = Field(default_factory=list)
    current_productivity: float = DEFAULT_PRODUCTIVITY
    recommendation: ScheduledSlot | None = None


class Insight(_CamelModel):
    """LLM 生成的单条洞察；线上字段名 type 对应 category"""

    category: InsightCategory = Field(alias="type")
    title: str
    description: str = ""
    confidence: float = 0.5
    actionable: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> Any:
        if isinstance(value, int | float) and not isinstance(value, bool):
            return min(max(float(value), 0.1), 1.0)
        return value


class InsightBatch(_CamelModel):
    insights: list[Insight] = Field(default_factory=list)

    @field_validator("insights")
    @classmethod
    def _truncate(cls, value: list[Insight]) -> list[Insight]:
        return value[:MAX_INSIGHTS]


class AnalysisRequest(BaseModel):
    user_id: str
    type: AnalysisType = AnalysisType.MANUAL
    task_id: str | None = None
    run_key: str | None = Field(default=None, description="幂等运行键；为空时每次生成新的运行")


class AnalysisData(BaseModel):
    tasks: list[ScoredTask] = Field(default_factory=list)
    sessions: list[UserSession] = Field(default_factory=list)


class PredictionSummary(_CamelModel):
    next_optimal_hour: int | None = None
    current_productivity: float = DEFAULT_PRODUCTIVITY


class AnalysisResult(_CamelModel):
    success: bool = True
    patterns_analyzed: list[str] = Field(default_factory=list)
    insights_generated: int = 0
    predictions: PredictionSummary | None = None


def _completion_utc(task: ScoredTask) -> datetime:
    return (task.completed_at or task.created_at).astimezone(UTC)


def _day_of_week(moment: datetime) -> int:
    return (moment.weekday() + 1) % 7


def _or_default(value: int | None, default: int = DEFAULT_DIMENSION) -> int:
    return value if value is not None else default


def analyze_completion_patterns(
    tasks: Sequence[ScoredTask],
    settings: AnalyzerSettings | None = None,
) -> CompletionPatterns | None:
    """完成时段与星期分布；样本不足时返回 None"""
    settings = settings or AnalyzerSettings()
    if len(tasks) < settings.min_tasks_for_patterns:
        return None

    hourly: dict[int, list[ScoredTask]] = {}
    daily: dict[int, list[ScoredTask]] = {}
    for task in tasks:
        moment = _completion_utc(task)
        hourly.setdefault(moment.hour, []).append(task)
        daily.setdefault(_day_of_week(moment), []).append(task)

    hourly_stats = {
        hour: HourlyStat(
            hour=hour,
            count=len(bucket),
            avg_quality=sum(_or_default(t.quality) for t in bucket) / len(bucket),
            avg_speed=sum(_or_default(t.speed) for t in bucket) / len(bucket),
        )
        for hour, bucket in sorted(hourly.items())
    }
    day_stats = {
        day: DayStat(
            day=day,
            count=len(bucket),
            avg_productivity=sum(
                t.overall_score if t.overall_score is not None else DEFAULT_PRODUCTIVITY
                for t in bucket
            )
            / len(bucket),
        )
        for day, bucket in sorted(daily.items())
    }

    eligible = [s for s in hourly_stats.values() if s.count >= settings.min_bucket_samples]
    # sorted 为稳定排序，同分时保持小时升序
    optimal = sorted(eligible, key=lambda s: (s.avg_quality + s.avg_speed) / 2, reverse=True)
    return CompletionPatterns(
        optimal_hours=optimal[: settings.top_slots],
        day_stats=day_stats,
        hourly_stats=hourly_stats,
        sample_size=len(tasks),
    )


def analyze_complexity_patterns(tasks: Sequence[ScoredTask]) -> ComplexityPatterns | None:
    """按难度分组统计；没有任务时返回 None"""
    if not tasks:
        return None

    groups: dict[int, list[ScoredTask]] = {}
    for task in tasks:
        groups.setdefault(_or_default(task.difficulty), []).append(task)

    result: dict[int, DifficultyGroup] = {}
    for difficulty, bucket in sorted(groups.items()):
        accuracies = [
            min(t.estimated_hours / t.actual_hours, TIME_ACCURACY_CAP)
            for t in bucket
            if t.estimated_hours and t.actual_hours
        ]
        result[difficulty] = DifficultyGroup(
            difficulty=difficulty,
            count=len(bucket),
            measured=len(accuracies),
            avg_time_accuracy=sum(accuracies) / len(accuracies) if accuracies else None,
            avg_satisfaction=sum(_or_default(t.user_satisfaction) for t in bucket) / len(bucket),
            confidence=min(len(bucket) / GROUP_CONFIDENCE_SAMPLES, 1.0),
        )
    return ComplexityPatterns(difficulty_groups=result, sample_size=len(tasks))


def generate_predictions(
    patterns: CompletionPatterns | None,
    now: datetime,
) -> Predictions | None:
    """按距当前时刻的小时数排列高效时段，最近的排在最前"""
    if patterns is None:
        return None
    now = now.astimezone(UTC)
    slots = sorted(
        (
            ScheduledSlot(
                **stat.model_dump(),
                hours_from_now=(stat.hour - now.hour) % 24,
                recommendation_score=(stat.avg_quality + stat.avg_speed) / 2,
            )
            for stat in patterns.optimal_hours
        ),
        key=lambda slot: slot.hours_from_now,
    )
    today = patterns.day_stats.get(_day_of_week(now))
    return Predictions(
        next_optimal_slots=slots,
        current_productivity=today.avg_productivity if today else DEFAULT_PRODUCTIVITY,
        recommendation=slots[0] if slots else None,
    )


def complexity_confidence(
    patterns: ComplexityPatterns,
    configured: float | None,
) -> float:
    """complexity_handling 置信度：配置值，或各分组置信度的样本量加权均值"""
    if configured is not None:
        return configured
    total = sum(g.count for g in patterns.difficulty_groups.values())
    if total == 0:
        return 0.0
    return sum(g.count * g.confidence for g in patterns.difficulty_groups.values()) / total


class PatternAnalyzer:
    """ML 模式分析 Agent"""

    def __init__(
        self,
        task_service: TaskService,
        generator: StructuredGenerator,
        runner: WorkflowRunner,
        settings: AnalyzerSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tasks = task_service
        self._generator = generator
        self._runner = runner
        self._settings = settings or AnalyzerSettings()
        self._clock = clock or (lambda: datetime.now(UTC))

    async def run(self, request: AnalysisRequest) -> AnalysisResult:
        run_id = request.run_key or (
            f"ml:{request.user_id}:{request.type}:{request.task_id or '-'}:{ULID()}"
        )
        return await self._runner.execute(
            "ml-analyzer",
            run_id,
            lambda run: self._analyze(run, request),
        )

    async def _analyze(self, run: WorkflowRun, request: AnalysisRequest) -> AnalysisResult:
        user_id = request.user_id
        now = self._clock()

        data = await run.step(
            "gather-historical-data",
            lambda: self._gather(user_id, now),
            AnalysisData,
        )
        completion = await run.step(
            "analyze-completion-patterns",
            self._async(lambda: analyze_completion_patterns(data.tasks, self._settings)),
            CompletionPatterns | None,
        )
        complexity = await run.step(
            "analyze-complexity-patterns",
            self._async(lambda: analyze_complexity_patterns(data.tasks)),
            ComplexityPatterns | None,
        )
        predictions = await run.step(
            "generate-predictions",
            self._async(lambda: generate_predictions(completion, now)),
            Predictions | None,
        )
        await run.step(
            "update-patterns",
            lambda: self._update_patterns(user_id, completion, complexity, predictions, now),
            list[str],
        )
        insights = await run.step(
            "generate-ai-insights",
            lambda: self.generate_insights(user_id, completion, complexity, predictions),
            list[Insight],
        )
        await run.step(
            "store-insights",
            lambda: self._store_insights(user_id, insights, completion, now),
            int,
        )
        await run.step(
            "cache-recommendations",
            lambda: self._cache_recommendations(
                user_id, data, completion, complexity, predictions, insights, now
            ),
            int,
        )

        analyzed = []
        if completion is not None:
            analyzed.append("completion_timing")
        if complexity is not None:
            analyzed.append("complexity_handling")

        await log.ainfo(
            "ml_analysis_completed",
            user_id=user_id,
            analysis_type=str(request.type),
            patterns=analyzed,
            insights=len(insights),
        )
        return AnalysisResult(
            patterns_analyzed=analyzed,
            insights_generated=len(insights),
            predictions=(
                PredictionSummary(
                    next_optimal_hour=(
                        predictions.recommendation.hour if predictions.recommendation else None
                    ),
                    current_productivity=predictions.current_productivity,
                )
                if predictions is not None
                else None
            ),
        )

    @staticmethod
    def _async(fn: Callable[[], Any]) -> Callable[[], Awaitable[Any]]:
        async def _run():
            return fn()

        return _run

    async def _gather(self, user_id: str, now: datetime) -> AnalysisData:
        tasks = await self._tasks.get_recent_completed(
            user_id,
            days=self._settings.history_days,
            limit=self._settings.history_limit,
            now=now,
        )
        sessions = await self._tasks.stores.activity_store.list_sessions_since(
            user_id, now - timedelta(days=self._settings.session_days)
        )
        return AnalysisData(tasks=tasks, sessions=sessions)

    async def _update_patterns(
        self,
        user_id: str,
        completion: CompletionPatterns | None,
        complexity: ComplexityPatterns | None,
        predictions: Predictions | None,
        now: datetime,
    ) -> list[str]:
        stored: list[str] = []
        if completion is not None:
            await self._tasks.store_pattern(
                user_id,
                PatternType.OPTIMAL_SCHEDULING,
                {
                    "optimalHours": [
                        h.model_dump(mode="json", by_alias=True) for h in completion.optimal_hours
                    ],
                    "dayStats": {
                        str(day): stat.model_dump(mode="json", by_alias=True)
                        for day, stat in completion.day_stats.items()
                    },
                    "lastUpdated": now.isoformat(),
                    "predictions": (
                        predictions.model_dump(mode="json", by_alias=True) if predictions else None
                    ),
                    "sampleSize": completion.sample_size,
                },
                min(completion.sample_size / self._settings.scheduling_confidence_samples, 1.0),
                sample_size=completion.sample_size,
            )
            stored.append(PatternType.OPTIMAL_SCHEDULING)
        if complexity is not None:
            await self._tasks.store_pattern(
                user_id,
                PatternType.COMPLEXITY_HANDLING,
                {
                    "difficultyGroups": {
                        str(diff): group.model_dump(mode="json", by_alias=True)
                        for diff, group in complexity.difficulty_groups.items()
                    },
                    "lastUpdated": now.isoformat(),
                    "sampleSize": complexity.sample_size,
                },
                complexity_confidence(complexity, self._settings.complexity_confidence),
                sample_size=complexity.sample_size,
            )
            stored.append(PatternType.COMPLEXITY_HANDLING)
        return stored

    async def generate_insights(
        self,
        user_id: str,
        completion: CompletionPatterns | None,
        complexity: ComplexityPatterns | None,
        predictions: Predictions | None,
    ) -> list[Insight]:
        """两类模式都存在时才请求 LLM；解析失败返回空列表"""
        if completion is None or complexity is None:
            return []

        prompt = insights_prompt(
            completion.sample_size,
            [(h.hour, h.avg_quality, h.avg_speed) for h in completion.optimal_hours],
            (
                predictions.recommendation.hour
                if predictions is not None and predictions.recommendation is not None
                else None
            ),
            [
                (g.difficulty, g.count, g.avg_time_accuracy, g.avg_satisfaction)
                for g in complexity.difficulty_groups.values()
            ],
        )
        decoded = await self._generator.generate(
            prompt,
            InsightBatch,
            model_alias="analyst",
            temperature=0.3,
            max_tokens=1024,
        )
        if isinstance(decoded, StructuredFailure):
            await log.awarning("insights_unparsed", user_id=user_id, reason=decoded.reason)
            return []
        return decoded.value.insights

    async def _store_insights(
        self,
        user_id: str,
        insights: list[Insight],
        completion: CompletionPatterns | None,
        now: datetime,
    ) -> int:
        if not insights:
            return 0
        stores = self._tasks.stores
        async with stores.tx.atomic():
            await stores.pattern_store.upsert_pattern(
                user_id,
                PatternType.AI_INSIGHTS,
                {
                    "insights": [i.model_dump(mode="json", by_alias=True) for i in insights],
                    "generatedAt": now.isoformat(),
                    "basedOnTasks": completion.sample_size if completion else 0,
                },
                self._settings.insights_confidence,
                len(insights),
            )
            await stores.event_bus.append(
                ML_STREAM,
                InsightsGeneratedEvent(user_id=user_id, insight_count=len(insights)),
            )
        return len(insights)

    async def _cache_recommendations(
        self,
        user_id: str,
        data: AnalysisData,
        completion: CompletionPatterns | None,
        complexity: ComplexityPatterns | None,
        predictions: Predictions | None,
        insights: list[Insight],
        now: datetime,
    ) -> int:
        bundle = {
            "scheduling": (
                [s.model_dump(mode="json", by_alias=True) for s in predictions.next_optimal_slots]
                if predictions
                else []
            ),
            "insights": [i.model_dump(mode="json", by_alias=True) for i in insights],
            "patterns": {
                "completion": (
                    completion.model_dump(mode="json", by_alias=True) if completion else None
                ),
                "complexity": (
                    complexity.model_dump(mode="json", by_alias=True) if complexity else None
                ),
            },
            "activity": {
                "sessions": len(data.sessions),
                "focusHours": sum(s.focus_hours or 0.0 for s in data.sessions),
            },
            "lastUpdated": now.isoformat(),
        }
        async with self._tasks.stores.tx.atomic():
            await self._tasks.stores.cache.setex(
                recommendations_key(user_id),
                self._settings.recommendations_ttl_s,
                json.dumps(bundle, ensure_ascii=False),
            )
        return self._settings.recommendations_ttl_s
