"""Planner Agent 单元测试

测试内容：
1. 子任务与不存在的任务直接跳过，不调用 LLM
2. 判断无法解析时按"不拆分"处理
3. 拆分：截断到 7 个、工时夹紧、依赖清洗、父任务 context 合并
4. 同一任务重投递幂等（步骤记忆 + plannedOrder 去重）
"""

import json

import pytest
from sylvia.agents.planner import ComplexityJudgment, PlannerAgent, PlannerRequest
from sylvia.core.config import TASK_STREAM
from sylvia.core.models import MetaPlanReadyEvent, TaskCreate
from sylvia.provider.structured import StructuredGenerator


def _judgment_json(subtask_count: int = 9) -> str:
    subtasks = [
        {
            "title": f"步骤 {i + 1}",
            "description": None if i == 0 else f"done when {i + 1}",
            "estimatedHours": [3, 0.1, None][i % 3],
            "tags": ["plan"],
            "dependencies": [0, 0, i, 99] if i else [],
        }
        for i in range(subtask_count)
    ]
    return "Here is my plan:\n" + json.dumps(
        {
            "needsSubtasks": True,
            "reasoning": "multiple phases",
            "estimatedComplexity": 4.6,
            "suggestedDuration": 6,
            "subtasks": subtasks,
        }
    )


@pytest.fixture
def make_planner(task_service, runner):
    def _factory(llm) -> PlannerAgent:
        return PlannerAgent(task_service, StructuredGenerator(llm), runner)

    return _factory


class TestComplexityJudgment:
    def test_normalization(self):
        judgment = ComplexityJudgment.model_validate_json(_judgment_json().split("\n", 1)[1])

        assert judgment.estimated_complexity == 5
        assert len(judgment.subtasks) == 7
        assert [s.estimated_hours for s in judgment.subtasks[:3]] == [1.5, 0.25, 1.0]
        assert judgment.subtasks[0].description == ""
        # 自引用、越界与重复下标被丢弃
        assert judgment.subtasks[0].dependencies == []
        assert judgment.subtasks[3].dependencies == [0]
        assert judgment.subtasks[6].dependencies == [0]

    def test_defaults(self):
        judgment = ComplexityJudgment()
        assert judgment.needs_subtasks is False
        assert judgment.estimated_complexity == 3
        assert judgment.subtasks == []


class TestPlannerSkips:
    async def test_child_task_skipped(self, task_service, scripted_llm, make_planner):
        root = await task_service.create_task("u1", TaskCreate(title="根任务"))
        child = await task_service.create_task(
            "u1", TaskCreate(title="子任务", parent_id=root.task_id)
        )
        llm = scripted_llm(_judgment_json())

        result = await make_planner(llm).run(PlannerRequest(task_id=child.task_id, user_id="u1"))

        assert result.skipped is True
        assert result.reason == "Not a root task"
        llm.call.assert_not_awaited()

    async def test_missing_task_skipped(self, scripted_llm, make_planner):
        llm = scripted_llm(_judgment_json())

        result = await make_planner(llm).run(PlannerRequest(task_id="missing", user_id="u1"))

        assert result.skipped is True
        assert result.reason == "Task not found"
        llm.call.assert_not_awaited()


class TestPlannerJudgment:
    async def test_unparseable_response_means_no_subtasks(
        self, task_service, scripted_llm, make_planner
    ):
        task = await task_service.create_task("u1", TaskCreate(title="写报告"))

        result = await make_planner(scripted_llm("I think this is simple.")).run(
            PlannerRequest(task_id=task.task_id, user_id="u1")
        )

        assert result.success is True
        assert result.subtasks_created == 0
        assert result.reasoning.startswith("Failed to parse AI response")
        assert await task_service.get_subtasks(task.task_id) == []

    async def test_simple_task_not_split(self, task_service, scripted_llm, make_planner):
        task = await task_service.create_task("u1", TaskCreate(title="回复邮件"))
        llm = scripted_llm('{"needsSubtasks": false, "reasoning": "", "estimatedComplexity": 1}')

        result = await make_planner(llm).run(PlannerRequest(task_id=task.task_id, user_id="u1"))

        assert result.subtasks_created == 0
        assert result.complexity == 1
        assert result.reasoning == "Task doesn't need subtasks"
        call = llm.call.await_args
        assert call.kwargs["model_alias"] == "planner"
        assert call.kwargs["temperature"] == 0.3
        assert call.kwargs["max_tokens"] == 2048


class TestPlannerSplit:
    async def test_creates_subtasks_and_updates_parent(
        self, task_service, scripted_llm, make_planner
    ):
        parent = await task_service.create_task(
            "u1",
            TaskCreate(title="发布新版本", estimated_hours=3, context={"source": "web"}),
        )

        result = await make_planner(scripted_llm(_judgment_json())).run(
            PlannerRequest(task_id=parent.task_id, user_id="u1")
        )

        assert result.subtasks_created == 7
        assert result.complexity == 5

        children = await task_service.get_subtasks(parent.task_id)
        assert [c.task_id for c in children] == result.subtask_ids
        assert [c.context["plannedOrder"] for c in children] == list(range(7))
        assert all(c.context["parentComplexity"] == 5 for c in children)
        assert all(c.user_id == "u1" for c in children)
        assert children[1].estimated_hours == 0.25

        updated = await task_service.get_task(parent.task_id)
        assert updated.estimated_hours == 6
        assert updated.context == {
            "source": "web",
            "planningCompleted": True,
            "complexityScore": 5,
            "subtaskCount": 7,
            "planningReasoning": "multiple phases",
        }

        entries = await task_service.stores.event_bus.read(TASK_STREAM, 0, count=100)
        plan_events = [e.event for e in entries if isinstance(e.event, MetaPlanReadyEvent)]
        assert len(plan_events) == 1
        assert plan_events[0].subtask_count == 7

    async def test_rerun_is_idempotent(self, task_service, scripted_llm, make_planner):
        """同一任务重投递：不再调用 LLM，不重复创建子任务"""
        parent = await task_service.create_task("u1", TaskCreate(title="搬家"))
        llm = scripted_llm(_judgment_json(3))
        planner = make_planner(llm)
        request = PlannerRequest(task_id=parent.task_id, user_id="u1")

        first = await planner.run(request)
        second = await planner.run(request)

        assert second.subtask_ids == first.subtask_ids
        assert len(await task_service.get_subtasks(parent.task_id)) == 3
        assert llm.call.await_count == 1
