"""Assessor Agent -- TASK_COMPLETED 触发的完成评估

步骤：
1. gather-task-data            任务 + 近期已完成任务（含评分）+ 直接子任务
2. calculate-time-metrics      计算耗时指标并回写 actual_hours
3. ai-assessment               LLM 四维评分（参考近期滚动均值）
4. calculate-final-scores      加权总分与 XP
5. store-scores-and-achievements  评分/XP/计数/成就在同一事务内提交
6. trigger-ml-update           向 events:ml 发布 TASK_SCORED

第 5 步按用户串行（asyncio.Lock），同一用户并发完成多个任务时
tasks_completed 与 total_xp 不会丢失更新，first_blood 也不会重复解锁。
"""

import asyncio
from datetime import UTC, datetime, time
from typing import Any

import structlog
from pydantic import BaseModel, Field
from sylvia.core.config import ML_STREAM, TASK_STREAM, user_achievements_key, user_stats_key
from sylvia.core.models import (
    AchievementUnlockedEvent,
    DimensionScores,
    ScoredTask,
    ScoreInput,
    Task,
    TaskScoredEvent,
    TaskUpdate,
    TimeMetrics,
)
from sylvia.core.task_service import TaskService
from sylvia.provider.structured import StructuredFailure, StructuredGenerator

from .achievements import AchievementContext, evaluate_achievements
from .config import AssessorSettings
from .prompts import assessor_prompt
from .scoring import compute_time_metrics, compute_xp, overall_score, rolling_averages
from .workflow import WorkflowRun, WorkflowRunner

log = structlog.get_logger()


class DimensionAssessment(DimensionScores):
    """LLM 评估结果；四个维度必须是 1-5 的整数，否则视为解析失败"""

    reasoning: dict[str, Any] | str = Field(default_factory=dict)
    highlights: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)

    def scores(self) -> DimensionScores:
        return DimensionScores(
            difficulty=self.difficulty,
            innovation=self.innovation,
            quality=self.quality,
            speed=self.speed,
        )

    def notes(self) -> str:
        return (
            f"{'; '.join(self.highlights)}. "
            f"Improvements: {'; '.join(self.improvements)}"
        )


class AssessorRequest(BaseModel):
    task_id: str
    user_id: str
    completed_at: datetime


class GatheredTaskData(BaseModel):
    task: Task
    recent: list[ScoredTask] = Field(default_factory=list)
    subtasks: list[Task] = Field(default_factory=list)


class FinalScores(BaseModel):
    overall: int
    xp: int


class AssessorResult(BaseModel):
    success: bool = True
    skipped: bool = False
    error: str | None = None
    scores: DimensionScores | None = None
    overall: int | None = None
    xp: int | None = None
    achievements: list[str] = Field(default_factory=list)
    time_metrics: TimeMetrics | None = None


class AssessorAgent:
    """任务完成评估 Agent"""

    def __init__(
        self,
        task_service: TaskService,
        generator: StructuredGenerator,
        runner: WorkflowRunner,
        settings: AssessorSettings | None = None,
    ) -> None:
        self._tasks = task_service
        self._generator = generator
        self._runner = runner
        self._settings = settings or AssessorSettings()
        self._user_locks: dict[str, asyncio.Lock] = {}

    async def run(self, request: AssessorRequest) -> AssessorResult:
        completed_ms = int(request.completed_at.timestamp() * 1000)
        return await self._runner.execute(
            "assessor",
            f"assessor:{request.task_id}:{completed_ms}",
            lambda run: self._assess(run, request),
        )

    def _user_lock(self, user_id: str) -> asyncio.Lock:
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        return lock

    async def _assess(self, run: WorkflowRun, request: AssessorRequest) -> AssessorResult:
        data = await run.step(
            "gather-task-data",
            lambda: self._gather(request),
            GatheredTaskData | None,
        )
        if data is None:
            await log.ainfo("assessor_skipped", task_id=request.task_id, reason="not_found")
            return AssessorResult(success=False, skipped=True, error="Task not found")

        metrics = await run.step(
            "calculate-time-metrics",
            lambda: self._time_metrics(data.task, request.completed_at),
            TimeMetrics,
        )

        assessment = await run.step(
            "ai-assessment",
            lambda: self.assess(data, metrics),
            DimensionAssessment | None,
        )
        if assessment is None:
            return AssessorResult(
                success=False,
                error="Failed to generate assessment",
                time_metrics=metrics,
            )

        final = await run.step(
            "calculate-final-scores",
            lambda: self._final_scores(assessment, metrics, bool(data.subtasks)),
            FinalScores,
        )

        earned = await run.step(
            "store-scores-and-achievements",
            lambda: self._store(data.task, request, assessment, metrics, final),
            list[str],
        )

        await run.step(
            "trigger-ml-update",
            lambda: self._tasks.stores.event_bus.publish(
                ML_STREAM,
                TaskScoredEvent(
                    user_id=request.user_id,
                    task_id=request.task_id,
                    scores=assessment.scores(),
                    time_metrics=metrics,
                ),
            ),
            int,
        )

        await log.ainfo(
            "assessor_completed",
            task_id=request.task_id,
            overall=final.overall,
            xp=final.xp,
            achievements=earned,
        )
        return AssessorResult(
            scores=assessment.scores(),
            overall=final.overall,
            xp=final.xp,
            achievements=earned,
            time_metrics=metrics,
        )

    async def _gather(self, request: AssessorRequest) -> GatheredTaskData | None:
        task = await self._tasks.get_task(request.task_id)
        if task is None:
            return None
        recent = await self._tasks.get_recent_completed(
            task.user_id,
            days=self._settings.recent_days,
            limit=self._settings.recent_limit,
            now=request.completed_at,
        )
        subtasks = await self._tasks.get_subtasks(task.task_id)
        return GatheredTaskData(task=task, recent=recent, subtasks=subtasks)

    async def _time_metrics(self, task: Task, completed_at: datetime) -> TimeMetrics:
        metrics = compute_time_metrics(task, completed_at)
        await self._tasks.update_task(
            task.task_id,
            TaskUpdate(actual_hours=metrics.actual_hours),
        )
        return metrics

    async def assess(
        self,
        data: GatheredTaskData,
        metrics: TimeMetrics,
    ) -> DimensionAssessment | None:
        """LLM 四维评分；解析失败返回 None"""
        prompt = assessor_prompt(
            data.task,
            metrics,
            rolling_averages(data.recent),
            len(data.subtasks),
        )
        decoded = await self._generator.generate(
            prompt,
            DimensionAssessment,
            model_alias="assessor",
            temperature=0.4,
            max_tokens=1024,
        )
        if isinstance(decoded, StructuredFailure):
            await log.awarning(
                "assessment_unparsed",
                task_id=data.task.task_id,
                reason=decoded.reason,
            )
            return None
        return decoded.value

    async def _final_scores(
        self,
        assessment: DimensionAssessment,
        metrics: TimeMetrics,
        has_subtasks: bool,
    ) -> FinalScores:
        overall = overall_score(assessment)
        xp = compute_xp(overall, assessment, metrics.was_on_time, has_subtasks)
        return FinalScores(overall=overall, xp=xp)

    async def _store(
        self,
        task: Task,
        request: AssessorRequest,
        assessment: DimensionAssessment,
        metrics: TimeMetrics,
        final: FinalScores,
    ) -> list[str]:
        """评分 + 计数 + 成就，单事务提交，返回本次新解锁的成就 slug"""
        stores = self._tasks.stores
        completed_at = request.completed_at.astimezone(UTC)
        day_start = datetime.combine(completed_at.date(), time.min, tzinfo=UTC)
        stats_key = user_stats_key(request.user_id)

        async with self._user_lock(request.user_id), stores.tx.atomic():
            outcome = await self._tasks.apply_score(
                task,
                ScoreInput(
                    difficulty=assessment.difficulty,
                    innovation=assessment.innovation,
                    quality=assessment.quality,
                    speed=assessment.speed,
                    overall_score=final.overall,
                    xp_earned=final.xp,
                    user_notes=assessment.notes(),
                ),
            )
            if outcome.first_scoring:
                tasks_completed = await stores.cache.hincrby(stats_key, "tasks_completed", 1)
            else:
                tasks_completed = int(await stores.cache.hget(stats_key, "tasks_completed") or 0)
            await stores.cache.hset(stats_key, {"last_completed": completed_at.isoformat()})

            per_day = await stores.task_store.count_completions_by_day(
                request.user_id, day_start
            )
            ctx = AchievementContext(
                tasks_completed=tasks_completed,
                total_xp=outcome.total_xp,
                difficulty=assessment.difficulty,
                innovation=assessment.innovation,
                quality=assessment.quality,
                speed=assessment.speed,
                on_time=metrics.was_on_time,
                completion_hour=completed_at.hour,
                completed_today=per_day.get(completed_at.date(), 0),
            )
            catalog = await stores.achievement_store.list_achievements()
            earned_before = await stores.achievement_store.get_earned_slugs(request.user_id)

            earned: list[str] = []
            for achievement in evaluate_achievements(catalog, earned_before, ctx):
                if not await stores.achievement_store.record_unlock(
                    request.user_id, achievement.slug
                ):
                    continue
                await stores.cache.sadd(user_achievements_key(request.user_id), achievement.slug)
                await stores.event_bus.append(
                    TASK_STREAM,
                    AchievementUnlockedEvent(
                        user_id=request.user_id,
                        achievement=achievement.slug,
                        achievement_name=achievement.name,
                        task_id=task.task_id,
                    ),
                )
                earned.append(achievement.slug)

        if earned:
            await log.ainfo("achievements_unlocked", user_id=request.user_id, slugs=earned)
        return earned
