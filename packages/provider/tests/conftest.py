"""Provider 包测试 fixtures"""

from unittest.mock import AsyncMock

import pytest
from sylvia.provider.models import ModelCallResult


def make_result(content: str = "ok", model_alias: str = "main") -> ModelCallResult:
    return ModelCallResult(
        content=content,
        model_alias=model_alias,
        model_name="gpt-4o",
        provider="openai",
        duration_ms=100,
    )


@pytest.fixture
def sample_messages() -> list[dict[str, str]]:
    return [{"role": "user", "content": "评估这个任务"}]


@pytest.fixture
def mock_primary():
    client = AsyncMock()
    client.complete = AsyncMock(return_value=make_result("primary response"))
    return client


@pytest.fixture
def mock_fallback():
    client = AsyncMock()
    client.complete = AsyncMock(return_value=make_result("fallback response", "fallback"))
    return client
