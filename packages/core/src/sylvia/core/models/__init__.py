"""Sylvia Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .achievement import (
    Achievement,
    AchievementCondition,
    ConditionClause,
    UserAchievement,
)
from .activity import CalendarEntry, UserSession
from .enums import (
    TERMINAL_STATES,
    AnalysisType,
    EventType,
    InsightCategory,
    PatternType,
    TaskStatus,
)
from .event import (
    AchievementUnlockedEvent,
    DailyAnalysisEvent,
    EventBase,
    InsightsGeneratedEvent,
    MetaPlanReadyEvent,
    StreamEntry,
    SylviaEvent,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskScoredEvent,
    TaskUpdatedEvent,
    decode_event,
    encode_event,
)
from .score import (
    DimensionScores,
    ScoredTask,
    ScoreInput,
    ScoreOutcome,
    TaskPattern,
    TaskScore,
    TimeMetrics,
)
from .task import Task, TaskCreate, TaskFilters, TaskUpdate

__all__ = [
    # 枚举
    "TaskStatus",
    "EventType",
    "PatternType",
    "AnalysisType",
    "InsightCategory",
    "TERMINAL_STATES",
    # Task
    "Task",
    "TaskCreate",
    "TaskUpdate",
    "TaskFilters",
    # Score / Pattern
    "DimensionScores",
    "TaskScore",
    "ScoreInput",
    "ScoreOutcome",
    "ScoredTask",
    "TaskPattern",
    "TimeMetrics",
    # Achievement
    "Achievement",
    "AchievementCondition",
    "ConditionClause",
    "UserAchievement",
    # 活动日志
    "CalendarEntry",
    "UserSession",
    # Event
    "EventBase",
    "SylviaEvent",
    "StreamEntry",
    "TaskCreatedEvent",
    "TaskUpdatedEvent",
    "TaskCompletedEvent",
    "TaskScoredEvent",
    "AchievementUnlockedEvent",
    "MetaPlanReadyEvent",
    "InsightsGeneratedEvent",
    "DailyAnalysisEvent",
    "encode_event",
    "decode_event",
]
