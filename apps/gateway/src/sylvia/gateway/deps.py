"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例

实例挂在 app.state 上，由 lifespan 初始化/清理。
"""

from fastapi import Request
from sylvia.agents.calendar import CalendarAnalytics
from sylvia.agents.orchestrator import WorkflowOrchestrator
from sylvia.core.store import StoreGroup
from sylvia.core.task_service import TaskService


def get_store_group(request: Request) -> StoreGroup:
    return request.app.state.store_group


def get_orchestrator(request: Request) -> WorkflowOrchestrator:
    return request.app.state.orchestrator


def get_task_service(request: Request) -> TaskService:
    """任务服务与编排器共享同一个 StoreGroup"""
    return request.app.state.orchestrator.task_service


def get_calendar(request: Request) -> CalendarAnalytics:
    return request.app.state.orchestrator.calendar
