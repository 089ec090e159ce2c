"""Event Domain Model -- 带类型标签的事件变体

每种事件类型对应一个固定字段集的模型，以 type 字段作为判别器。
事件在流边界处解码一次（decode_event），下游处理器只接触类型化结构。

线上格式：camelCase JSON（taskId / userId），ts 为毫秒时间戳字符串。
"""

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

from .score import DimensionScores, TimeMetrics


def _now() -> datetime:
    return datetime.now(UTC)


class EventBase(BaseModel):
    """所有事件共享的信封字段"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    user_id: str = Field(description="关联用户")
    ts: datetime = Field(default_factory=_now, description="事件时间戳")

    @field_validator("ts", mode="before")
    @classmethod
    def _parse_epoch_millis(cls, value: Any) -> Any:
        if isinstance(value, str) and value.isdigit():
            value = int(value)
        if isinstance(value, int | float):
            return datetime.fromtimestamp(value / 1000, UTC)
        return value

    @field_serializer("ts")
    def _serialize_ts(self, ts: datetime) -> str:
        return str(int(ts.timestamp() * 1000))


class TaskCreatedEvent(EventBase):
    type: Literal["TASK_CREATED"] = "TASK_CREATED"
    task_id: str
    parent_id: str | None = None


class TaskUpdatedEvent(EventBase):
    type: Literal["TASK_UPDATED"] = "TASK_UPDATED"
    task_id: str
    delta: dict[str, Any] = Field(default_factory=dict, description="本次变更的字段")


class TaskCompletedEvent(EventBase):
    type: Literal["TASK_COMPLETED"] = "TASK_COMPLETED"
    task_id: str
    completed_at: datetime


class TaskScoredEvent(EventBase):
    """TASK_SCORED -- events:task 上携带 XP/总分，events:ml 上携带完整维度与耗时指标"""

    type: Literal["TASK_SCORED"] = "TASK_SCORED"
    task_id: str
    xp_earned: int | None = None
    overall_score: int | None = None
    scores: DimensionScores | None = None
    time_metrics: TimeMetrics | None = None


class AchievementUnlockedEvent(EventBase):
    type: Literal["ACHIEVEMENT_UNLOCKED"] = "ACHIEVEMENT_UNLOCKED"
    achievement: str = Field(description="成就 slug")
    achievement_name: str
    task_id: str | None = None


class MetaPlanReadyEvent(EventBase):
    type: Literal["META_PLAN_READY"] = "META_PLAN_READY"
    task_id: str
    subtask_count: int
    complexity: int


class InsightsGeneratedEvent(EventBase):
    type: Literal["INSIGHTS_GENERATED"] = "INSIGHTS_GENERATED"
    insight_count: int


class DailyAnalysisEvent(EventBase):
    type: Literal["DAILY_ANALYSIS"] = "DAILY_ANALYSIS"


SylviaEvent = Annotated[
    TaskCreatedEvent
    | TaskUpdatedEvent
    | TaskCompletedEvent
    | TaskScoredEvent
    | AchievementUnlockedEvent
    | MetaPlanReadyEvent
    | InsightsGeneratedEvent
    | DailyAnalysisEvent,
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter[SylviaEvent] = TypeAdapter(SylviaEvent)


def encode_event(event: EventBase) -> str:
    """序列化为线上格式（camelCase JSON）"""
    return event.model_dump_json(by_alias=True)


def decode_event(data: str | bytes | dict[str, Any]) -> SylviaEvent:
    """从线上格式解码为类型化事件

    Raises:
        pydantic.ValidationError: 未知 type 或字段不合法
    """
    if isinstance(data, dict):
        return _EVENT_ADAPTER.validate_python(data)
    return _EVENT_ADAPTER.validate_json(data)


class StreamEntry(BaseModel):
    """事件流中的一条记录

    event 为 None 表示该条目无法解码，raw 保留原始内容供日志排查。
    """

    entry_id: int = Field(description="流内单调递增的游标")
    stream: str
    event: SylviaEvent | None = None
    raw: str = ""
