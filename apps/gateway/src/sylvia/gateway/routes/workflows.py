"""Agent 工作流直调路由

POST /api/workflows/planner      {taskId, userId}
POST /api/workflows/assessor     {taskId, userId, completedAt?}
POST /api/workflows/ml-analyzer  {userId, type?, taskId?}

直接运行对应 Agent 并返回其结构化结果。业务失败（任务不存在、解析失败）
以 success=false 的 200 响应返回；Provider 调用失败由全局处理器映射为 502，
其余步骤失败映射为 500 + {success: false, error, step}。
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sylvia.agents.analyzer import AnalysisResult
from sylvia.agents.assessor import AssessorResult
from sylvia.agents.orchestrator import WorkflowOrchestrator
from sylvia.agents.planner import PlannerResult
from sylvia.core.models import AnalysisType

from ..deps import get_orchestrator

router = APIRouter()


class _CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PlannerTrigger(_CamelRequest):
    task_id: str
    user_id: str


class AssessorTrigger(_CamelRequest):
    task_id: str
    user_id: str
    completed_at: datetime | None = None


class AnalyzerTrigger(_CamelRequest):
    user_id: str
    type: AnalysisType = AnalysisType.MANUAL
    task_id: str | None = None


@router.post("/api/workflows/planner", response_model=PlannerResult)
async def run_planner(
    body: PlannerTrigger,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.trigger_planner(body.task_id, body.user_id)


@router.post("/api/workflows/assessor", response_model=AssessorResult)
async def run_assessor(
    body: AssessorTrigger,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    if await orchestrator.task_service.get_task(body.task_id) is None:
        return AssessorResult(success=False, skipped=True, error="Task not found")
    return await orchestrator.trigger_assessor(body.task_id, body.user_id, body.completed_at)


@router.post(
    "/api/workflows/ml-analyzer",
    response_model=AnalysisResult,
    response_model_by_alias=True,
)
async def run_ml_analyzer(
    body: AnalyzerTrigger,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.trigger_ml_analysis(body.user_id, body.type, body.task_id)
