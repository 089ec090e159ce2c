"""TaskService -- 任务生命周期的唯一写入口

负责任务 CRUD、评分与模式存储，并在写入后维护缓存镜像、发射事件：
1. 持久化写入先提交（durable first）
2. 刷新 task:<id> 缓存镜像与 user:<uid>:tasks 索引
3. 追加 TASK_* 事件到 events:task

事件发射与缓存更新在持久化提交之后，因此订阅方读到的任务状态一定已落盘。
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from ulid import ULID

from .config import (
    ACTIVE_USERS_KEY,
    TASK_STREAM,
    task_cache_key,
    user_stats_key,
    user_tasks_key,
)
from .exceptions import TaskNotFoundError, TaskValidationError
from .models import (
    ScoredTask,
    ScoreInput,
    ScoreOutcome,
    Task,
    TaskCompletedEvent,
    TaskCreate,
    TaskCreatedEvent,
    TaskFilters,
    TaskPattern,
    TaskScoredEvent,
    TaskStatus,
    TaskUpdate,
    TaskUpdatedEvent,
)
from .store import StoreGroup

log = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _cache_mapping(task: Task) -> dict[str, Any]:
    """缓存镜像：None 写为空字符串，其余字段按 JSON 形态写入"""
    return {k: ("" if v is None else v) for k, v in task.model_dump(mode="json").items()}


class TaskService:
    """任务业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._stores = store_group
        self._clock = clock

    @property
    def stores(self) -> StoreGroup:
        return self._stores

    async def create_task(self, user_id: str, data: TaskCreate) -> Task:
        """创建任务

        Raises:
            TaskNotFoundError: parent_id 指向不存在的任务
        """
        if data.parent_id is not None:
            parent = await self._stores.task_store.get_task(data.parent_id)
            if parent is None:
                raise TaskNotFoundError(data.parent_id)
            if parent.user_id != user_id:
                raise TaskValidationError("父任务属于其他用户")

        now = self._clock()
        task = Task(
            task_id=str(ULID()),
            user_id=user_id,
            parent_id=data.parent_id,
            title=data.title,
            description=data.description,
            priority=data.priority if data.priority is not None else 3,
            estimated_hours=data.estimated_hours,
            due_at=data.due_at,
            scheduled_at=data.scheduled_at,
            tags=data.tags,
            context=data.context,
            created_at=now,
            updated_at=now,
        )

        # 持久化先提交
        async with self._stores.tx.atomic():
            await self._stores.task_store.create_task(task)

        # 缓存镜像 + 用户索引 + TASK_CREATED
        async with self._stores.tx.atomic():
            cache = self._stores.cache
            await cache.hset(task_cache_key(task.task_id), _cache_mapping(task))
            await cache.zadd(
                user_tasks_key(user_id),
                {task.task_id: int(now.timestamp() * 1000)},
            )
            await cache.sadd(ACTIVE_USERS_KEY, user_id)
            await self._stores.event_bus.append(
                TASK_STREAM,
                TaskCreatedEvent(
                    user_id=user_id,
                    task_id=task.task_id,
                    parent_id=task.parent_id,
                ),
            )

        await log.ainfo(
            "task_created",
            task_id=task.task_id,
            user_id=user_id,
            parent_id=task.parent_id,
        )
        return task

    async def update_task(self, task_id: str, update: TaskUpdate) -> Task:
        """部分更新任务

        状态变为 done 时同一 UPDATE 内补写 completed_at，
        变为 in_progress 时补写 started_at（均仅在原值为空时）。
        TASK_COMPLETED 只在状态从非 done 变为 done 时发出。
        读取原状态与写入在同一事务内完成，并发的完成请求只有一个会发出事件。

        Raises:
            TaskNotFoundError: task_id 不存在
        """
        delta = update.model_dump(exclude_unset=True)
        new_status = delta.get("status")

        async with self._stores.tx.atomic():
            existing = await self._stores.task_store.get_task(task_id)
            if existing is None:
                raise TaskNotFoundError(task_id)

            now = self._clock()
            fields = dict(delta)
            fields["updated_at"] = now
            if (
                new_status == TaskStatus.DONE
                and existing.completed_at is None
                and fields.get("completed_at") is None
            ):
                fields["completed_at"] = now
            if (
                new_status == TaskStatus.IN_PROGRESS
                and existing.started_at is None
                and fields.get("started_at") is None
            ):
                fields["started_at"] = now

            task = await self._stores.task_store.update_fields(task_id, fields)
            if task is None:
                raise TaskNotFoundError(task_id)
            await self._stores.cache.hset(task_cache_key(task_id), _cache_mapping(task))
            await self._stores.event_bus.append(
                TASK_STREAM,
                TaskUpdatedEvent(
                    user_id=task.user_id,
                    task_id=task_id,
                    delta=update.model_dump(mode="json", exclude_unset=True),
                ),
            )
            completed = (
                new_status == TaskStatus.DONE
                and existing.status != TaskStatus.DONE
                and task.completed_at is not None
            )
            if completed:
                await self._stores.event_bus.append(
                    TASK_STREAM,
                    TaskCompletedEvent(
                        user_id=task.user_id,
                        task_id=task_id,
                        completed_at=task.completed_at,
                    ),
                )

        await log.ainfo(
            "task_updated",
            task_id=task_id,
            fields=sorted(delta),
            completed=completed,
        )
        return task

    async def get_task(self, task_id: str) -> Task | None:
        return await self._stores.task_store.get_task(task_id)

    async def get_user_tasks(
        self,
        user_id: str,
        filters: TaskFilters | None = None,
    ) -> list[Task]:
        return await self._stores.task_store.list_user_tasks(user_id, filters)

    async def get_subtasks(self, parent_id: str) -> list[Task]:
        return await self._stores.task_store.get_subtasks(parent_id)

    async def get_recent_completed(
        self,
        user_id: str,
        days: int = 30,
        limit: int = 10,
        now: datetime | None = None,
    ) -> list[ScoredTask]:
        """最近 days 天内完成的任务（联结评分），最新优先"""
        since = (now or self._clock()) - timedelta(days=days)
        return await self._stores.task_store.list_completed_with_scores(
            user_id, since, limit
        )

    async def get_cached_task(self, task_id: str) -> dict[str, str] | None:
        """读取缓存镜像；未缓存时返回 None"""
        mirror = await self._stores.cache.hgetall(task_cache_key(task_id))
        return mirror or None

    async def delete_task(self, task_id: str) -> bool:
        """删除任务及其全部子孙任务（数据库级联），同时清理缓存镜像"""
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            return False

        subtree = await self._collect_subtree(task_id)
        async with self._stores.tx.atomic():
            await self._stores.task_store.delete_task(task_id)
            for tid in subtree:
                await self._stores.cache.delete(task_cache_key(tid))
                await self._stores.cache.zrem(user_tasks_key(task.user_id), tid)

        await log.ainfo("task_deleted", task_id=task_id, removed=len(subtree))
        return True

    async def _collect_subtree(self, task_id: str) -> list[str]:
        collected = [task_id]
        frontier = [task_id]
        while frontier:
            parent_id = frontier.pop()
            for child in await self._stores.task_store.get_subtasks(parent_id):
                collected.append(child.task_id)
                frontier.append(child.task_id)
        return collected

    async def score_task(self, task_id: str, score: ScoreInput) -> ScoreOutcome:
        """为任务写入评分（单事务）

        Raises:
            TaskNotFoundError: task_id 不存在
        """
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        async with self._stores.tx.atomic():
            outcome = await self.apply_score(task, score)

        await log.ainfo(
            "task_scored",
            task_id=task_id,
            xp_delta=outcome.xp_delta,
            first_scoring=outcome.first_scoring,
        )
        return outcome

    async def apply_score(self, task: Task, score: ScoreInput) -> ScoreOutcome:
        """评分写入的事务内部分：upsert 评分行 + XP 增量 + TASK_SCORED

        XP 增量为本次 xp_earned 减去之前存储的 xp_earned，重复评分不会重复计入。
        注意：不开启事务，调用方必须处于 tx.atomic() 块内。
        """
        previous = await self._stores.score_store.get_score(task.task_id)
        await self._stores.score_store.upsert_score(task.task_id, score)

        xp_delta = score.xp_earned - (previous.xp_earned if previous else 0)
        total_xp = await self._stores.cache.hincrby(
            user_stats_key(task.user_id), "total_xp", xp_delta
        )
        await self._stores.event_bus.append(
            TASK_STREAM,
            TaskScoredEvent(
                user_id=task.user_id,
                task_id=task.task_id,
                xp_earned=score.xp_earned,
                overall_score=score.overall_score,
            ),
        )
        return ScoreOutcome(
            task_id=task.task_id,
            user_id=task.user_id,
            first_scoring=previous is None,
            xp_delta=xp_delta,
            total_xp=total_xp,
        )

    async def store_pattern(
        self,
        user_id: str,
        pattern_type: str,
        pattern_data: dict[str, Any],
        confidence: float,
        sample_size: int | None = None,
    ) -> None:
        """按 (user_id, pattern_type) upsert 行为模式

        sample_size 未给出时依次取 pattern_data 的 sample_size / sampleSize，默认 1。
        """
        if sample_size is None:
            sample_size = pattern_data.get("sample_size", pattern_data.get("sampleSize", 1))
        async with self._stores.tx.atomic():
            await self._stores.pattern_store.upsert_pattern(
                user_id,
                pattern_type,
                pattern_data,
                confidence,
                int(sample_size),
            )

    async def get_patterns(
        self,
        user_id: str,
        pattern_type: str | None = None,
    ) -> list[TaskPattern]:
        return await self._stores.pattern_store.get_patterns(user_id, pattern_type)
