"""行为模式查询路由

GET /api/patterns?user_id=&pattern_type= 按置信度降序返回用户的行为模式。
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sylvia.core.models import TaskPattern
from sylvia.core.task_service import TaskService

from ..deps import get_task_service

router = APIRouter()


class PatternListResponse(BaseModel):
    patterns: list[TaskPattern]


@router.get("/api/patterns", response_model=PatternListResponse)
async def list_patterns(
    user_id: str = Query(description="所属用户"),
    pattern_type: str | None = Query(default=None, description="按模式类型筛选"),
    service: TaskService = Depends(get_task_service),
):
    return PatternListResponse(patterns=await service.get_patterns(user_id, pattern_type))
