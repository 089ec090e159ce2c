"""packages/agents 测试 fixtures -- Agent 组装与已完成任务构造"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sylvia.agents.config import WorkflowSettings
from sylvia.agents.workflow import WorkflowRunner
from sylvia.core.models import ScoreInput, Task, TaskCreate, TaskStatus, TaskUpdate
from sylvia.core.task_service import TaskService


@pytest.fixture
def no_sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def runner(store_group, no_sleep) -> WorkflowRunner:
    """重试不等待的 WorkflowRunner"""
    return WorkflowRunner(
        store_group,
        WorkflowSettings(max_attempts=3, backoff_s=0.5),
        sleep=no_sleep,
    )


async def _complete_task(
    task_service: TaskService,
    user_id: str,
    completed_at: datetime,
    *,
    title: str = "已完成任务",
    estimated_hours: float | None = 1.0,
    duration_hours: float = 1.0,
    due_at: datetime | None = None,
    score: ScoreInput | None = None,
) -> Task:
    """创建任务并标记为 done（显式 started_at / completed_at），可选写入评分"""
    task = await task_service.create_task(
        user_id,
        TaskCreate(title=title, estimated_hours=estimated_hours, due_at=due_at),
    )
    await task_service.update_task(
        task.task_id,
        TaskUpdate(
            status=TaskStatus.IN_PROGRESS,
            started_at=completed_at - timedelta(hours=duration_hours),
        ),
    )
    task = await task_service.update_task(
        task.task_id,
        TaskUpdate(status=TaskStatus.DONE, completed_at=completed_at),
    )
    if score is not None:
        await task_service.score_task(task.task_id, score)
    return task


def _score_input(
    difficulty: int = 3,
    innovation: int = 3,
    quality: int = 3,
    speed: int = 3,
    overall: int = 60,
    xp: int = 6,
    satisfaction: int | None = None,
) -> ScoreInput:
    return ScoreInput(
        difficulty=difficulty,
        innovation=innovation,
        quality=quality,
        speed=speed,
        overall_score=overall,
        xp_earned=xp,
        user_satisfaction=satisfaction,
    )


@pytest.fixture
def make_completed(task_service: TaskService):
    """await make_completed(user_id, completed_at, **kwargs) -> Task"""

    async def _factory(user_id: str, completed_at: datetime, **kwargs) -> Task:
        return await _complete_task(task_service, user_id, completed_at, **kwargs)

    return _factory


@pytest.fixture
def make_score():
    """make_score(difficulty=..., quality=..., overall=..., xp=...) -> ScoreInput"""
    return _score_input
