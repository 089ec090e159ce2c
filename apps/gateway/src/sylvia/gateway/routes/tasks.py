"""任务路由

POST   /api/tasks                 创建任务（201）
GET    /api/tasks                 按用户查询，支持 status / parent_id / root_only / due_before / tags
GET    /api/tasks/{task_id}       任务详情，含直接子任务与评分
PATCH  /api/tasks/{task_id}       部分更新（状态变为 done 时发出 TASK_COMPLETED）
DELETE /api/tasks/{task_id}       删除任务及子孙任务
POST   /api/tasks/{task_id}/score 写入评分
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse, Response
from sylvia.core.models import (
    ScoreInput,
    ScoreOutcome,
    Task,
    TaskCreate,
    TaskFilters,
    TaskScore,
    TaskStatus,
    TaskUpdate,
)
from sylvia.core.task_service import TaskService

from ..deps import get_task_service
from ..errors import error_response

router = APIRouter()


class CreateTaskRequest(TaskCreate):
    user_id: str = Field(min_length=1, description="所属用户")


class TaskListResponse(BaseModel):
    tasks: list[Task]


class TaskDetailResponse(BaseModel):
    task: Task
    subtasks: list[Task] = Field(default_factory=list)
    score: TaskScore | None = None


def _not_found(task_id: str) -> JSONResponse:
    return error_response(404, "TASK_NOT_FOUND", f"Task with id {task_id} does not exist")


@router.post("/api/tasks", status_code=201, response_model=Task)
async def create_task(
    body: CreateTaskRequest,
    service: TaskService = Depends(get_task_service),
):
    data = TaskCreate(**body.model_dump(exclude={"user_id"}))
    return await service.create_task(body.user_id, data)


@router.get("/api/tasks", response_model=TaskListResponse)
async def list_tasks(
    user_id: str = Query(description="所属用户"),
    status: TaskStatus | None = Query(default=None),
    parent_id: str | None = Query(default=None),
    root_only: bool = Query(default=False),
    due_before: datetime | None = Query(default=None),
    tags: list[str] | None = Query(default=None),
    service: TaskService = Depends(get_task_service),
):
    filters = TaskFilters(
        status=status,
        parent_id=parent_id,
        root_only=root_only,
        due_before=due_before,
        tags=tags or [],
    )
    return TaskListResponse(tasks=await service.get_user_tasks(user_id, filters))


@router.get("/api/tasks/{task_id}", response_model=TaskDetailResponse)
async def get_task_detail(
    task_id: str,
    service: TaskService = Depends(get_task_service),
):
    task = await service.get_task(task_id)
    if task is None:
        return _not_found(task_id)
    return TaskDetailResponse(
        task=task,
        subtasks=await service.get_subtasks(task_id),
        score=await service.stores.score_store.get_score(task_id),
    )


@router.patch("/api/tasks/{task_id}", response_model=Task)
async def update_task(
    task_id: str,
    body: TaskUpdate,
    service: TaskService = Depends(get_task_service),
):
    return await service.update_task(task_id, body)


@router.delete("/api/tasks/{task_id}", status_code=204)
async def delete_task(
    task_id: str,
    service: TaskService = Depends(get_task_service),
):
    if not await service.delete_task(task_id):
        return _not_found(task_id)
    return Response(status_code=204)


@router.post("/api/tasks/{task_id}/score", response_model=ScoreOutcome)
async def score_task(
    task_id: str,
    body: ScoreInput,
    service: TaskService = Depends(get_task_service),
):
    return await service.score_task(task_id, body)
