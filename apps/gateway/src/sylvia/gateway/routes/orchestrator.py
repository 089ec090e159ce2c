"""编排器控制路由

POST /api/orchestrator/start           启动事件读取循环
POST /api/orchestrator/stop            停止（等待进行中的处理器完成）
GET  /api/orchestrator/status          运行状态与游标
POST /api/orchestrator/daily-analysis  为全部活跃用户发布 DAILY_ANALYSIS
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sylvia.agents.orchestrator import OrchestratorStatus, WorkflowOrchestrator

from ..deps import get_orchestrator

router = APIRouter()


class DailyAnalysisResponse(BaseModel):
    scheduled: int


@router.post("/api/orchestrator/start", response_model=OrchestratorStatus)
async def start_orchestrator(
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.start()
    return await orchestrator.status()


@router.post("/api/orchestrator/stop", response_model=OrchestratorStatus)
async def stop_orchestrator(
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.stop()
    return await orchestrator.status()


@router.get("/api/orchestrator/status", response_model=OrchestratorStatus)
async def orchestrator_status(
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.status()


@router.post("/api/orchestrator/daily-analysis", response_model=DailyAnalysisResponse)
async def schedule_daily_analysis(
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return DailyAnalysisResponse(scheduled=await orchestrator.schedule_daily_analysis())
