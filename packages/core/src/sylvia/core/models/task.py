"""Task Domain Model

任务为自引用树结构：parent_id 指向父任务，删除父任务时级联删除子任务。
带 parent_id 的任务永远不会被 Planner 独立规划。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import TaskStatus


class Task(BaseModel):
    """Task 数据模型"""

    task_id: str = Field(description="唯一标识，ULID 格式")
    user_id: str = Field(description="所属用户")
    parent_id: str | None = Field(default=None, description="父任务 ID，根任务为 None")
    title: str = Field(description="任务标题")
    description: str = Field(default="", description="任务描述")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="当前状态")
    priority: int = Field(default=3, ge=1, le=5, description="优先级 1-5")
    progress: int = Field(default=0, ge=0, le=100, description="进度百分比")
    estimated_hours: float | None = Field(default=None, ge=0, description="预估工时")
    actual_hours: float | None = Field(default=None, ge=0, description="实际工时")
    due_at: datetime | None = Field(default=None, description="截止时间")
    scheduled_at: datetime | None = Field(default=None, description="计划开始时间")
    started_at: datetime | None = Field(default=None, description="实际开始时间")
    completed_at: datetime | None = Field(default=None, description="完成时间")
    tags: list[str] = Field(default_factory=list, description="标签")
    context: dict[str, Any] = Field(default_factory=dict, description="自由上下文")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class TaskCreate(BaseModel):
    """创建任务的输入字段"""

    title: str = Field(min_length=1)
    description: str = ""
    parent_id: str | None = None
    priority: int | None = Field(default=None, ge=1, le=5)
    estimated_hours: float | None = Field(default=None, ge=0)
    due_at: datetime | None = None
    scheduled_at: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)


class TaskUpdate(BaseModel):
    """部分更新字段 -- 仅显式设置的字段会被写入（exclude_unset）"""

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    status: TaskStatus | None = None
    priority: int | None = Field(default=None, ge=1, le=5)
    progress: int | None = Field(default=None, ge=0, le=100)
    estimated_hours: float | None = Field(default=None, ge=0)
    actual_hours: float | None = Field(default=None, ge=0)
    due_at: datetime | None = None
    scheduled_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    tags: list[str] | None = None
    context: dict[str, Any] | None = None


class TaskFilters(BaseModel):
    """get_user_tasks 筛选条件

    root_only=True 等价于 "parent_id IS NULL"；parent_id 与 root_only 同时给出时以 parent_id 为准。
    tags 为交集语义：任务标签与筛选标签至少有一个相同即命中。
    """

    status: TaskStatus | None = None
    parent_id: str | None = None
    root_only: bool = False
    due_before: datetime | None = None
    tags: list[str] = Field(default_factory=list)
