"""WorkflowRunner -- 步骤记忆 + 整体重试

每个 Agent 调用是一串命名步骤。WorkflowRun.step() 在步骤成功后把结果
以 JSON 写入 workflow_steps(run_id, step_name)；同一 run_id 重新投递时，
已完成的步骤直接返回存储值，不会重复执行带副作用的步骤体。

约定：步骤返回 None 时不记忆（例如"任务不存在"），重投递时重新执行。
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from pydantic import TypeAdapter
from sylvia.core.exceptions import WorkflowStepError
from sylvia.core.store import StoreGroup
from sylvia.provider.exceptions import ProviderError

from .config import WorkflowSettings

log = structlog.get_logger()

T = TypeVar("T")
R = TypeVar("R")

_ADAPTERS: dict[Any, TypeAdapter] = {}


def _adapter(result_type: Any) -> TypeAdapter:
    adapter = _ADAPTERS.get(result_type)
    if adapter is None:
        adapter = TypeAdapter(result_type)
        _ADAPTERS[result_type] = adapter
    return adapter


class WorkflowRun:
    """单次工作流调用（一个 run_id）"""

    def __init__(self, workflow: str, run_id: str, stores: StoreGroup) -> None:
        self.workflow = workflow
        self.run_id = run_id
        self._stores = stores
        self.replayed_steps: list[str] = []

    async def step(
        self,
        name: str,
        fn: Callable[[], Awaitable[T]],
        result_type: Any,
    ) -> T:
        """执行或回放一个步骤

        Args:
            name: 步骤名（同一 run 内唯一）
            fn: 步骤体
            result_type: 结果类型，用于 JSON 编解码（支持 pydantic 可识别的任意类型）

        Raises:
            ProviderError: 步骤体中的 LLM 调用失败（原样抛出，由 WorkflowRunner 决定重试）
            WorkflowStepError: 步骤体抛出其他异常
        """
        adapter = _adapter(result_type)
        stored = await self._stores.workflow_steps.get_step(self.run_id, name)
        if stored is not None:
            self.replayed_steps.append(name)
            await log.adebug("workflow_step_replayed", step=name)
            return adapter.validate_json(stored)

        try:
            value = await fn()
        except (ProviderError, WorkflowStepError):
            raise
        except Exception as e:
            raise WorkflowStepError(name, str(e), recoverable=False) from e

        if value is not None:
            async with self._stores.tx.atomic():
                await self._stores.workflow_steps.save_step(
                    self.run_id,
                    name,
                    adapter.dump_json(value).decode(),
                )
        await log.adebug("workflow_step_completed", step=name)
        return value


class WorkflowRunner:
    """执行工作流，对可恢复的 Provider 异常整体重试

    重试时创建新的 WorkflowRun（同一 run_id），已完成步骤命中记忆。
    """

    def __init__(
        self,
        stores: StoreGroup,
        settings: WorkflowSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._stores = stores
        self._settings = settings or WorkflowSettings()
        self._sleep = sleep

    async def execute(
        self,
        workflow: str,
        run_id: str,
        body: Callable[[WorkflowRun], Awaitable[R]],
    ) -> R:
        max_attempts = self._settings.max_attempts
        with structlog.contextvars.bound_contextvars(workflow=workflow, run_id=run_id):
            for attempt in range(1, max_attempts + 1):
                run = WorkflowRun(workflow, run_id, self._stores)
                try:
                    result = await body(run)
                except (ProviderError, WorkflowStepError) as e:
                    if not e.recoverable or attempt >= max_attempts:
                        await log.aerror(
                            "workflow_failed",
                            attempt=attempt,
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                        raise
                    await log.awarning(
                        "workflow_attempt_failed",
                        attempt=attempt,
                        max_attempts=max_attempts,
                        error=str(e),
                    )
                    await self._sleep(self._settings.backoff_s * attempt)
                    continue
                await log.ainfo(
                    "workflow_completed",
                    attempt=attempt,
                    replayed=len(run.replayed_steps),
                )
                return result
        raise AssertionError("unreachable")
