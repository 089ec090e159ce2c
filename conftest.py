"""全局 pytest 配置 -- 临时 SQLite StoreGroup + 脚本化 LLM fixture"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sylvia.core.store import StoreGroup, create_store_group
from sylvia.core.task_service import TaskService
from sylvia.provider.models import ModelCallResult


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已初始化（含默认成就目录）的 StoreGroup"""
    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.close()


@pytest_asyncio.fixture
async def task_service(store_group: StoreGroup) -> TaskService:
    return TaskService(store_group)


def make_call_result(content: str, model_alias: str = "main") -> ModelCallResult:
    """构造测试用 ModelCallResult"""
    return ModelCallResult(
        content=content,
        model_alias=model_alias,
        model_name="test-model",
        provider="test",
        duration_ms=5,
    )


@pytest.fixture
def scripted_llm() -> Callable[..., AsyncMock]:
    """按顺序返回脚本化回复的 LLMService 替身

    用法: llm = scripted_llm('{"needsSubtasks": false}', ProviderError("down"))
    字符串作为回复内容返回，异常实例按顺序抛出；脚本用尽后重复最后一项。
    """

    def _factory(*replies: str | Exception) -> AsyncMock:
        script = list(replies)

        async def _call(prompt_or_messages, model_alias=None, **kwargs):
            reply = script.pop(0) if len(script) > 1 else script[0]
            if isinstance(reply, Exception):
                raise reply
            return make_call_result(reply, model_alias or "main")

        llm = AsyncMock()
        llm.call = AsyncMock(side_effect=_call)
        return llm

    return _factory
