"""apps/gateway 测试配置 -- 运行真实 lifespan 的 FastAPI app + httpx AsyncClient"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sylvia.agents.config import WorkflowSettings
from sylvia.agents.orchestrator import build_orchestrator


@pytest_asyncio.fixture
async def app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AsyncGenerator[FastAPI, None]:
    """echo 模式 + 临时数据库；lifespan 负责初始化和清理 app.state"""
    monkeypatch.setenv("SYLVIA_DB_PATH", str(tmp_path / "sqlite" / "test.db"))
    monkeypatch.setenv("SYLVIA_LLM_MODE", "echo")
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")

    from sylvia.gateway.main import create_app

    application = create_app()
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def use_llm(app: FastAPI, scripted_llm) -> Callable[..., None]:
    """把 app 的编排器替换为使用脚本化 LLM 的实例（单次尝试，不重试）"""

    def _install(*replies) -> None:
        previous = app.state.orchestrator
        app.state.orchestrator = build_orchestrator(
            app.state.store_group,
            scripted_llm(*replies),
            workflow_settings=WorkflowSettings(max_attempts=1),
        )
        assert not previous.is_running

    return _install


@pytest.fixture
def create_task(client: AsyncClient) -> Callable:
    async def _create(user_id: str = "u1", **fields) -> dict:
        payload = {"user_id": user_id, "title": "Write report", **fields}
        resp = await client.post("/api/tasks", json=payload)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _create
