"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + LLM 服务 + 编排器 + 路由注册。
编排器在 lifespan 中组装但不自动启动，由 POST /api/orchestrator/start 或
python -m sylvia.agents run-orchestrator 启动。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse
from sylvia.agents.config import load_analyzer_settings
from sylvia.agents.orchestrator import build_orchestrator
from sylvia.core.config import get_db_path
from sylvia.core.exceptions import TaskNotFoundError, TaskValidationError, WorkflowStepError
from sylvia.core.store import create_store_group
from sylvia.provider import LiteLLMClient, ProviderError, build_llm_service, load_provider_config

from .errors import error_response
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import analytics, health, orchestrator, patterns, tasks, workflows

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """启动时初始化 Store / LLM / 编排器，关闭时停止编排器并关闭连接"""
    store_group = await create_store_group(get_db_path())
    app.state.store_group = store_group

    provider_config = load_provider_config()
    app.state.provider_config = provider_config
    llm_service = build_llm_service(provider_config)
    app.state.llm_service = llm_service
    # 健康检查只探测真实的 LiteLLM Proxy
    primary = llm_service.primary
    app.state.litellm_client = primary if isinstance(primary, LiteLLMClient) else None
    log.info(
        "llm_service_initialized",
        mode=provider_config.llm_mode,
        proxy_url=provider_config.proxy_base_url,
        fallback_enabled=provider_config.fallback_enabled,
    )

    app.state.orchestrator = build_orchestrator(
        store_group,
        llm_service,
        load_analyzer_settings(),
    )

    yield

    if app.state.orchestrator.is_running:
        await app.state.orchestrator.stop()
    await store_group.close()


async def _task_not_found(request: Request, exc: TaskNotFoundError) -> JSONResponse:
    return error_response(404, "TASK_NOT_FOUND", str(exc))


async def _task_invalid(request: Request, exc: TaskValidationError) -> JSONResponse:
    return error_response(422, "VALIDATION_ERROR", str(exc))


async def _request_invalid(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(p) for p in first.get("loc", ()))
    return error_response(422, "VALIDATION_ERROR", f"{location}: {first.get('msg', 'invalid')}")


async def _provider_failed(request: Request, exc: ProviderError) -> JSONResponse:
    await log.awarning("provider_error_response", error=str(exc), recoverable=exc.recoverable)
    return error_response(502, "PROVIDER_ERROR", str(exc))


async def _workflow_step_failed(request: Request, exc: WorkflowStepError) -> JSONResponse:
    """步骤失败以结构化结果返回给触发方，而不是裸 500"""
    await log.aerror("workflow_step_error_response", step=exc.step, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": str(exc), "step": exc.step},
    )


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="Sylvia Gateway",
        version="0.1.0",
        description="Sylvia 任务生命周期与分析 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()
    setup_logfire(app)

    # TaskNotFoundError 是 TaskValidationError 的子类，按 MRO 匹配更具体的处理器
    app.add_exception_handler(TaskNotFoundError, _task_not_found)
    app.add_exception_handler(TaskValidationError, _task_invalid)
    app.add_exception_handler(RequestValidationError, _request_invalid)
    app.add_exception_handler(ProviderError, _provider_failed)
    app.add_exception_handler(WorkflowStepError, _workflow_step_failed)

    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(patterns.router, tags=["patterns"])
    app.include_router(workflows.router, tags=["workflows"])
    app.include_router(analytics.router, tags=["analytics"])
    app.include_router(orchestrator.router, tags=["orchestrator"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
