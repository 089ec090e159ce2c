"""集成测试共享 fixture -- 脚本化 LLM 驱动的完整编排器"""

from collections.abc import Callable

import pytest
from sylvia.agents.config import WorkflowSettings
from sylvia.agents.orchestrator import WorkflowOrchestrator, build_orchestrator
from sylvia.core.store import StoreGroup


@pytest.fixture
def make_orchestrator(scripted_llm) -> Callable:
    """返回 (orchestrator, llm)；LLM 按调用顺序回放 replies"""

    def _factory(stores: StoreGroup, *replies):
        llm = scripted_llm(*replies)
        orchestrator = build_orchestrator(
            stores,
            llm,
            workflow_settings=WorkflowSettings(max_attempts=1),
        )
        return orchestrator, llm

    return _factory


@pytest.fixture
def drain() -> Callable:
    """反复 run_once 直到流上没有新条目，返回处理总数"""

    async def _drain(orchestrator: WorkflowOrchestrator, stream: str) -> int:
        total = 0
        while processed := await orchestrator.run_once(stream):
            total += processed
        return total

    return _drain
