"""进程重启后的恢复

1. 游标持久化：新编排器从上次处理到的位置继续，已处理事件不会重放
2. 步骤日志：同一 run_id 重跑时已完成步骤直接复用，不重复调用 LLM
"""

from pathlib import Path

import pytest
from sylvia.core.config import TASK_STREAM
from sylvia.core.models import TaskCreate
from sylvia.core.store import create_store_group
from sylvia.provider.exceptions import ProviderError

NO_SPLIT = '{"needsSubtasks": false, "reasoning": "small", "estimatedComplexity": 1}'


class TestRestartResume:
    async def test_cursor_survives_restart(self, tmp_db_path: Path, make_orchestrator, drain):
        stores = await create_store_group(str(tmp_db_path))
        try:
            first, first_llm = make_orchestrator(stores, NO_SPLIT)
            await first.load_cursors()
            done = await first.task_service.create_task("u1", TaskCreate(title="before restart"))
            await drain(first, TASK_STREAM)
            assert first_llm.call.await_count == 1
        finally:
            await stores.close()

        stores = await create_store_group(str(tmp_db_path))
        try:
            second, second_llm = make_orchestrator(stores, NO_SPLIT)
            cursors = await second.load_cursors()
            assert cursors[TASK_STREAM] == await stores.event_bus.latest_id(TASK_STREAM)

            fresh = await second.task_service.create_task("u1", TaskCreate(title="after restart"))
            await drain(second, TASK_STREAM)

            assert second_llm.call.await_count == 1
            prompt = second_llm.call.await_args.args[0]
            assert "after restart" in str(prompt)
            assert await stores.workflow_steps.list_steps(f"planner:{fresh.task_id}") != []
            # 重启前已规划的任务保留原有步骤日志
            assert await stores.workflow_steps.list_steps(f"planner:{done.task_id}") == [
                "fetch-task",
                "analyze-task",
            ]
        finally:
            await stores.close()

    async def test_failed_run_replays_completed_steps(
        self, tmp_db_path: Path, make_orchestrator
    ):
        stores = await create_store_group(str(tmp_db_path))
        try:
            flaky, _ = make_orchestrator(stores, ProviderError("proxy down", recoverable=False))
            task = await flaky.task_service.create_task("u1", TaskCreate(title="retry me"))
            run_id = f"planner:{task.task_id}"

            with pytest.raises(ProviderError):
                await flaky.trigger_planner(task.task_id, "u1")
            assert await stores.workflow_steps.list_steps(run_id) == ["fetch-task"]
        finally:
            await stores.close()

        stores = await create_store_group(str(tmp_db_path))
        try:
            healthy, llm = make_orchestrator(stores, NO_SPLIT)
            result = await healthy.trigger_planner(task.task_id, "u1")

            assert result.success is True
            assert result.complexity == 1
            assert llm.call.await_count == 1
            assert await stores.workflow_steps.list_steps(run_id) == [
                "fetch-task",
                "analyze-task",
            ]
        finally:
            await stores.close()
