"""活动日志 Domain Model

CalendarEntry：按日期记录的时间块/精力/专注度；
UserSession：会话级活动统计。二者只作为分析输入。
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


class CalendarEntry(BaseModel):
    """日历条目"""

    entry_id: str
    user_id: str
    task_id: str | None = None
    date: date
    time_blocked_hours: float | None = Field(default=None, ge=0)
    actual_hours: float | None = Field(default=None, ge=0)
    energy_level: int | None = Field(default=None, ge=1, le=5)
    focus_score: int | None = Field(default=None, ge=1, le=5)
    interruptions: int = Field(default=0, ge=0)
    created_at: datetime


class UserSession(BaseModel):
    """用户会话"""

    session_id: str
    user_id: str
    started_at: datetime
    ended_at: datetime | None = None
    tasks_created: int = 0
    tasks_completed: int = 0
    focus_hours: float | None = None
    break_hours: float | None = None
    session_type: str = "work"
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def hour_of_day(self) -> int:
        return self.started_at.hour

    @property
    def day_of_week(self) -> int:
        """0=周日 ... 6=周六"""
        return (self.started_at.weekday() + 1) % 7
