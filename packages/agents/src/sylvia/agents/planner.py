"""Planner Agent -- TASK_CREATED 触发的任务拆分

带 parent_id 的任务与不存在的任务直接跳过（子任务永不再规划）。
复杂度判断无法解析时按"不需要拆分"处理，绝不让模型输出问题变成流水线故障。

步骤：fetch-task -> analyze-task -> create-subtasks -> update-parent -> emit-planning-event
"""

from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from sylvia.core.config import TASK_STREAM
from sylvia.core.models import MetaPlanReadyEvent, Task, TaskCreate, TaskUpdate
from sylvia.core.task_service import TaskService
from sylvia.provider.structured import StructuredFailure, StructuredGenerator

from .prompts import planner_prompt
from .workflow import WorkflowRun, WorkflowRunner

log = structlog.get_logger()

MAX_SUBTASKS = 7
MIN_SUBTASK_HOURS = 0.25
MAX_SUBTASK_HOURS = 1.5


class SubtaskPlan(BaseModel):
    """单个子任务描述（15-90 分钟的专注工作）"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = Field(min_length=1)
    description: str = Field(default="", description="done-when 完成标准")
    estimated_hours: float = Field(default=1.0)
    tags: list[str] = Field(default_factory=list)
    dependencies: list[int] = Field(default_factory=list, description="同批次内前置子任务的下标")

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("estimated_hours", mode="before")
    @classmethod
    def _default_hours(cls, value: Any) -> Any:
        return 1.0 if value is None else value

    @field_validator("estimated_hours")
    @classmethod
    def _clamp_hours(cls, value: float) -> float:
        return min(max(value, MIN_SUBTASK_HOURS), MAX_SUBTASK_HOURS)


class ComplexityJudgment(BaseModel):
    """复杂度判断

    子任务超过 7 个时截断；依赖下标中的自引用与越界下标被丢弃。
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    needs_subtasks: bool = False
    reasoning: str = ""
    estimated_complexity: int = Field(default=3)
    suggested_duration: float | None = Field(default=None, ge=0)
    subtasks: list[SubtaskPlan] = Field(default_factory=list)

    @field_validator("estimated_complexity", mode="before")
    @classmethod
    def _clamp_complexity(cls, value: Any) -> Any:
        if isinstance(value, int | float) and not isinstance(value, bool):
            return min(max(round(value), 1), 5)
        return value

    @model_validator(mode="after")
    def _normalize_subtasks(self) -> "ComplexityJudgment":
        subtasks = self.subtasks[:MAX_SUBTASKS]
        for index, subtask in enumerate(subtasks):
            subtask.dependencies = list(
                dict.fromkeys(
                    d for d in subtask.dependencies if d != index and 0 <= d < len(subtasks)
                )
            )
        self.subtasks = subtasks
        return self


class PlannerRequest(BaseModel):
    task_id: str
    user_id: str


class PlannerResult(BaseModel):
    success: bool = True
    skipped: bool = False
    reason: str | None = None
    subtasks_created: int = 0
    subtask_ids: list[str] = Field(default_factory=list)
    complexity: int | None = None
    reasoning: str = ""


class PlannerAgent:
    """任务规划 Agent"""

    def __init__(
        self,
        task_service: TaskService,
        generator: StructuredGenerator,
        runner: WorkflowRunner,
    ) -> None:
        self._tasks = task_service
        self._generator = generator
        self._runner = runner

    async def run(self, request: PlannerRequest) -> PlannerResult:
        return await self._runner.execute(
            "planner",
            f"planner:{request.task_id}",
            lambda run: self._plan(run, request),
        )

    async def _plan(self, run: WorkflowRun, request: PlannerRequest) -> PlannerResult:
        task = await run.step(
            "fetch-task",
            lambda: self._tasks.get_task(request.task_id),
            Task | None,
        )
        if task is None or not task.is_root:
            reason = "Task not found" if task is None else "Not a root task"
            await log.ainfo("planner_skipped", task_id=request.task_id, reason=reason)
            return PlannerResult(skipped=True, reason=reason)

        judgment = await run.step(
            "analyze-task",
            lambda: self.analyze(task),
            ComplexityJudgment,
        )
        if not (judgment.needs_subtasks and judgment.subtasks):
            return PlannerResult(
                complexity=judgment.estimated_complexity,
                reasoning=judgment.reasoning or "Task doesn't need subtasks",
            )

        subtasks = await run.step(
            "create-subtasks",
            lambda: self._create_subtasks(task, judgment),
            list[Task],
        )
        await run.step(
            "update-parent",
            lambda: self._update_parent(task.task_id, judgment, len(subtasks)),
            Task,
        )
        await run.step(
            "emit-planning-event",
            lambda: self._tasks.stores.event_bus.publish(
                TASK_STREAM,
                MetaPlanReadyEvent(
                    user_id=task.user_id,
                    task_id=task.task_id,
                    subtask_count=len(subtasks),
                    complexity=judgment.estimated_complexity,
                ),
            ),
            int,
        )

        await log.ainfo(
            "planner_completed",
            task_id=task.task_id,
            subtasks_created=len(subtasks),
            complexity=judgment.estimated_complexity,
        )
        return PlannerResult(
            subtasks_created=len(subtasks),
            subtask_ids=[s.task_id for s in subtasks],
            complexity=judgment.estimated_complexity,
            reasoning=judgment.reasoning,
        )

    async def analyze(self, task: Task) -> ComplexityJudgment:
        """生成复杂度判断；解析失败时返回"不拆分"的默认判断"""
        decoded = await self._generator.generate(
            planner_prompt(task),
            ComplexityJudgment,
            model_alias="planner",
            temperature=0.3,
            max_tokens=2048,
        )
        if isinstance(decoded, StructuredFailure):
            await log.awarning(
                "planner_judgment_unparsed",
                task_id=task.task_id,
                reason=decoded.reason,
            )
            return ComplexityJudgment(
                needs_subtasks=False,
                reasoning=f"Failed to parse AI response ({decoded.reason})",
            )
        return decoded.value

    async def _create_subtasks(self, parent: Task, judgment: ComplexityJudgment) -> list[Task]:
        """按数组顺序创建子任务

        已存在相同 plannedOrder 的子任务不会重复创建（步骤中途失败后的重投递）。
        """
        existing = {
            child.context.get("plannedOrder"): child
            for child in await self._tasks.get_subtasks(parent.task_id)
        }
        created: list[Task] = []
        for index, plan in enumerate(judgment.subtasks):
            if index in existing:
                created.append(existing[index])
                continue
            created.append(
                await self._tasks.create_task(
                    parent.user_id,
                    TaskCreate(
                        title=plan.title,
                        description=plan.description,
                        parent_id=parent.task_id,
                        estimated_hours=plan.estimated_hours,
                        tags=plan.tags,
                        context={
                            "dependencies": plan.dependencies,
                            "plannedOrder": index,
                            "parentComplexity": judgment.estimated_complexity,
                        },
                    ),
                )
            )
        return created

    async def _update_parent(
        self,
        task_id: str,
        judgment: ComplexityJudgment,
        subtask_count: int,
    ) -> Task:
        # 重新读取，合并期间写入的 context 键
        current = await self._tasks.get_task(task_id)
        context = dict(current.context) if current is not None else {}
        context.update(
            {
                "planningCompleted": True,
                "complexityScore": judgment.estimated_complexity,
                "subtaskCount": subtask_count,
                "planningReasoning": judgment.reasoning,
            }
        )
        update = TaskUpdate(context=context)
        if judgment.suggested_duration is not None:
            update.estimated_hours = judgment.suggested_duration
        return await self._tasks.update_task(task_id, update)
