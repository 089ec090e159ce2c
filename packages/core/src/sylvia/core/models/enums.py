"""枚举定义

包含 TaskStatus、EventType、PatternType、AnalysisType 枚举，
以及 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态"""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"
    CANCELLED = "cancelled"


TERMINAL_STATES: set[TaskStatus] = {
    TaskStatus.DONE,
    TaskStatus.CANCELLED,
}


class EventType(StrEnum):
    """事件类型

    events:task 流: TASK_* / ACHIEVEMENT_UNLOCKED / META_PLAN_READY / DAILY_ANALYSIS
    events:ml 流: TASK_SCORED / INSIGHTS_GENERATED
    """

    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_COMPLETED = "TASK_COMPLETED"
    TASK_SCORED = "TASK_SCORED"
    ACHIEVEMENT_UNLOCKED = "ACHIEVEMENT_UNLOCKED"
    META_PLAN_READY = "META_PLAN_READY"
    INSIGHTS_GENERATED = "INSIGHTS_GENERATED"
    DAILY_ANALYSIS = "DAILY_ANALYSIS"


class PatternType(StrEnum):
    """行为模式类型（每个用户每种类型一条记录）"""

    OPTIMAL_SCHEDULING = "optimal_scheduling"
    COMPLEXITY_HANDLING = "complexity_handling"
    AI_INSIGHTS = "ai_insights"


class AnalysisType(StrEnum):
    """ML 分析触发来源"""

    TASK_COMPLETION = "task_completion"
    DAILY_ANALYSIS = "daily_analysis"
    MANUAL = "manual"


class InsightCategory(StrEnum):
    """AI 洞察分类"""

    SCHEDULING = "scheduling"
    ESTIMATION = "estimation"
    DIFFICULTY = "difficulty"
    ENERGY = "energy"
