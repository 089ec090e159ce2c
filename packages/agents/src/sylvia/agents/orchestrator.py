"""WorkflowOrchestrator -- 事件流 -> Agent 调度

两个读取循环：
- events:task  TASK_CREATED -> Planner，TASK_COMPLETED -> Assessor，DAILY_ANALYSIS -> 每日分析
- events:ml    TASK_SCORED -> ML 分析

同一流内按顺序逐条分发；处理器异常记录日志后跳过，游标在每次分发尝试后前进，
并持久化到 orchestrator:cursors 哈希，重启后从上次位置继续。
stop() 只设置标志并唤醒阻塞读取，不会中断正在执行的处理器。
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from pydantic import BaseModel, Field
from sylvia.core.config import (
    ACTIVE_USERS_KEY,
    ML_BLOCK_MS,
    ML_STREAM,
    ORCHESTRATOR_BLOCK_MS,
    RETENTION_DAYS,
    TASK_STREAM,
)
from sylvia.core.exceptions import TaskNotFoundError
from sylvia.core.models import (
    AnalysisType,
    DailyAnalysisEvent,
    EventBase,
    EventType,
    StreamEntry,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskScoredEvent,
)
from sylvia.core.store import StoreGroup
from sylvia.core.task_service import TaskService
from sylvia.provider.service import LLMService
from sylvia.provider.structured import StructuredGenerator

from .analyzer import AnalysisRequest, AnalysisResult, PatternAnalyzer
from .assessor import AssessorAgent, AssessorRequest, AssessorResult
from .calendar import CalendarAnalytics
from .config import AnalyzerSettings, AssessorSettings, WorkflowSettings
from .planner import PlannerAgent, PlannerRequest, PlannerResult
from .workflow import WorkflowRunner

log = structlog.get_logger()

CURSORS_KEY = "orchestrator:cursors"

Handler = Callable[[Any], Awaitable[Any]]


def _ts_ms(event: EventBase) -> int:
    return int(event.ts.timestamp() * 1000)


class OrchestratorStatus(BaseModel):
    running: bool
    cursors: dict[str, int] = Field(default_factory=dict)
    handlers: dict[str, list[str]] = Field(default_factory=dict)


class PruneResult(BaseModel):
    events: dict[str, int] = Field(default_factory=dict)
    workflow_steps: int = 0


class WorkflowOrchestrator:
    """事件驱动的 Agent 编排器"""

    def __init__(
        self,
        task_service: TaskService,
        planner: PlannerAgent,
        assessor: AssessorAgent,
        analyzer: PatternAnalyzer,
        calendar: CalendarAnalytics | None = None,
        task_block_ms: int = ORCHESTRATOR_BLOCK_MS,
        ml_block_ms: int = ML_BLOCK_MS,
        batch_size: int = 10,
        error_backoff_s: float = 1.0,
    ) -> None:
        self.task_service = task_service
        self.planner = planner
        self.assessor = assessor
        self.analyzer = analyzer
        self.calendar = calendar or CalendarAnalytics(task_service.stores)
        self._stores = task_service.stores
        self._block_ms = {TASK_STREAM: task_block_ms, ML_STREAM: ml_block_ms}
        self._batch_size = batch_size
        self._error_backoff_s = error_backoff_s
        self._handlers: dict[str, dict[str, Handler]] = {}
        self._cursors: dict[str, int] = {}
        self._loops: list[asyncio.Task] = []
        self._running = False
        self._register_defaults()

    # ============================================================
    # 注册
    # ============================================================

    def register(
        self,
        event_type: EventType | str,
        handler: Handler,
        stream: str = TASK_STREAM,
    ) -> None:
        """注册（或替换）某个流上某类事件的处理器"""
        self._handlers.setdefault(stream, {})[str(event_type)] = handler

    def _register_defaults(self) -> None:
        self.register(EventType.TASK_CREATED, self._on_task_created)
        self.register(EventType.TASK_COMPLETED, self._on_task_completed)
        self.register(EventType.DAILY_ANALYSIS, self._on_daily_analysis)
        self.register(EventType.TASK_SCORED, self._on_task_scored, stream=ML_STREAM)

    # ============================================================
    # 生命周期
    # ============================================================

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """为每个已注册处理器的流启动一个读取循环"""
        if self._running:
            return
        await self.load_cursors()
        self._running = True
        self._loops = [
            asyncio.create_task(self._loop(stream), name=f"orchestrator:{stream}")
            for stream in self._handlers
        ]
        await log.ainfo("orchestrator_started", streams=list(self._handlers))

    async def stop(self) -> None:
        """请求停止并等待循环退出（正在执行的处理器会跑完）"""
        if not self._running:
            return
        self._running = False
        await self._stores.event_bus.notify()
        await asyncio.gather(*self._loops)
        self._loops = []
        await log.ainfo("orchestrator_stopped", cursors=dict(self._cursors))

    async def status(self) -> OrchestratorStatus:
        return OrchestratorStatus(
            running=self._running,
            cursors=dict(self._cursors),
            handlers={stream: sorted(h) for stream, h in self._handlers.items()},
        )

    async def _loop(self, stream: str) -> None:
        block_ms = self._block_ms.get(stream, ORCHESTRATOR_BLOCK_MS)
        while self._running:
            try:
                await self.run_once(stream, block_ms=block_ms)
            except Exception as e:
                # 读取或游标写入失败（例如数据库被锁）：退避后重试，循环不退出
                await log.aerror(
                    "orchestrator_loop_error",
                    stream=stream,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await asyncio.sleep(self._error_backoff_s)

    # ============================================================
    # 游标
    # ============================================================

    async def load_cursors(self) -> dict[str, int]:
        """读取持久化游标；没有记录的流从当前末尾开始（只处理之后的新事件）"""
        persisted = await self._stores.cache.hgetall(CURSORS_KEY)
        for stream in self._handlers:
            if stream in self._cursors:
                continue
            if stream in persisted:
                self._cursors[stream] = int(persisted[stream])
            else:
                self._cursors[stream] = await self._stores.event_bus.latest_id(stream)
        return dict(self._cursors)

    async def seek(self, stream: str, entry_id: int) -> None:
        """把游标移动到 entry_id（下一次读取 entry_id 之后的条目）"""
        await self._save_cursor(stream, entry_id)

    async def _cursor(self, stream: str) -> int:
        if stream not in self._cursors:
            await self.load_cursors()
        return self._cursors.get(stream, 0)

    async def _save_cursor(self, stream: str, entry_id: int) -> None:
        self._cursors[stream] = entry_id
        async with self._stores.tx.atomic():
            await self._stores.cache.hset(CURSORS_KEY, {stream: entry_id})

    # ============================================================
    # 保留期清理
    # ============================================================

    async def prune(
        self,
        retention_days: int = RETENTION_DAYS,
        now: datetime | None = None,
    ) -> PruneResult:
        """删除保留期之前的已消费事件与工作流步骤记忆

        事件只删到各流已持久化的游标为止，未消费的条目始终保留。
        """
        cutoff = (now or datetime.now(UTC)) - timedelta(days=retention_days)
        cursors = await self.load_cursors()
        async with self._stores.tx.atomic():
            events = {
                stream: await self._stores.event_bus.prune(stream, cutoff, cursor)
                for stream, cursor in cursors.items()
            }
            steps = await self._stores.workflow_steps.prune(cutoff)
        result = PruneResult(events=events, workflow_steps=steps)
        await log.ainfo("orchestrator_pruned", cutoff=cutoff.isoformat(), **result.model_dump())
        return result

    # ============================================================
    # 分发
    # ============================================================

    async def run_once(self, stream: str, block_ms: int = 0) -> int:
        """读取并分发一批事件，返回本批处理的条目数"""
        after_id = await self._cursor(stream)
        entries = await self._stores.event_bus.read(
            stream,
            after_id,
            block_ms=block_ms,
            count=self._batch_size,
        )
        processed = 0
        for entry in entries:
            if self._loops and not self._running:
                break
            await self._dispatch(entry)
            await self._save_cursor(stream, entry.entry_id)
            processed += 1
        return processed

    async def _dispatch(self, entry: StreamEntry) -> None:
        if entry.event is None:
            await log.awarning(
                "event_undecodable",
                stream=entry.stream,
                entry_id=entry.entry_id,
                raw=entry.raw[:200],
            )
            return

        event_type = entry.event.type
        handler = self._handlers.get(entry.stream, {}).get(event_type)
        if handler is None:
            await log.adebug("event_ignored", stream=entry.stream, event_type=event_type)
            return

        with structlog.contextvars.bound_contextvars(
            stream=entry.stream,
            entry_id=entry.entry_id,
            event_type=event_type,
        ):
            try:
                await handler(entry.event)
            except Exception as e:
                await log.aerror(
                    "event_handler_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return
            await log.ainfo("event_dispatched")

    # ============================================================
    # 默认处理器
    # ============================================================

    async def _on_task_created(self, event: TaskCreatedEvent) -> PlannerResult | None:
        if event.parent_id is not None:
            return None
        return await self.planner.run(PlannerRequest(task_id=event.task_id, user_id=event.user_id))

    async def _on_task_completed(self, event: TaskCompletedEvent) -> AssessorResult:
        return await self.assessor.run(
            AssessorRequest(
                task_id=event.task_id,
                user_id=event.user_id,
                completed_at=event.completed_at,
            )
        )

    async def _on_task_scored(self, event: TaskScoredEvent) -> AnalysisResult:
        analysis_type = AnalysisType.TASK_COMPLETION
        return await self.analyzer.run(
            AnalysisRequest(
                user_id=event.user_id,
                type=analysis_type,
                task_id=event.task_id,
                run_key=f"ml:{event.user_id}:{analysis_type}:{event.task_id}:{_ts_ms(event)}",
            )
        )

    async def _on_daily_analysis(self, event: DailyAnalysisEvent) -> AnalysisResult:
        analysis_type = AnalysisType.DAILY_ANALYSIS
        return await self.analyzer.run(
            AnalysisRequest(
                user_id=event.user_id,
                type=analysis_type,
                run_key=f"ml:{event.user_id}:{analysis_type}:-:{_ts_ms(event)}",
            )
        )

    # ============================================================
    # 手动触发
    # ============================================================

    async def trigger_planner(self, task_id: str, user_id: str) -> PlannerResult:
        return await self.planner.run(PlannerRequest(task_id=task_id, user_id=user_id))

    async def trigger_assessor(
        self,
        task_id: str,
        user_id: str,
        completed_at: datetime | None = None,
    ) -> AssessorResult:
        """completed_at 缺省时取任务的完成时间，任务未完成则取当前时间"""
        if completed_at is None:
            task = await self.task_service.get_task(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            completed_at = task.completed_at or datetime.now(UTC)
        return await self.assessor.run(
            AssessorRequest(task_id=task_id, user_id=user_id, completed_at=completed_at)
        )

    async def trigger_ml_analysis(
        self,
        user_id: str,
        analysis_type: AnalysisType = AnalysisType.MANUAL,
        task_id: str | None = None,
    ) -> AnalysisResult:
        return await self.analyzer.run(
            AnalysisRequest(user_id=user_id, type=analysis_type, task_id=task_id)
        )

    async def trigger_daily_analysis(self, user_id: str) -> AnalysisResult:
        return await self.trigger_ml_analysis(user_id, AnalysisType.DAILY_ANALYSIS)

    async def schedule_daily_analysis(self) -> int:
        """为每个活跃用户发布一条 DAILY_ANALYSIS，返回发布数"""
        users = sorted(await self._stores.cache.smembers(ACTIVE_USERS_KEY))
        async with self._stores.tx.atomic():
            for user_id in users:
                await self._stores.event_bus.append(
                    TASK_STREAM, DailyAnalysisEvent(user_id=user_id)
                )
        await log.ainfo("daily_analysis_scheduled", users=len(users))
        return len(users)


def build_orchestrator(
    stores: StoreGroup,
    llm_service: LLMService,
    analyzer_settings: AnalyzerSettings | None = None,
    assessor_settings: AssessorSettings | None = None,
    workflow_settings: WorkflowSettings | None = None,
    error_backoff_s: float = 1.0,
) -> WorkflowOrchestrator:
    """按默认接线组装编排器与全部 Agent"""
    task_service = TaskService(stores)
    generator = StructuredGenerator(llm_service)
    runner = WorkflowRunner(stores, workflow_settings)
    return WorkflowOrchestrator(
        task_service=task_service,
        planner=PlannerAgent(task_service, generator, runner),
        assessor=AssessorAgent(task_service, generator, runner, assessor_settings),
        analyzer=PatternAnalyzer(task_service, generator, runner, analyzer_settings),
        calendar=CalendarAnalytics(stores),
        error_backoff_s=error_backoff_s,
    )
