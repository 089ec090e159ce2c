"""Agent 侧可调参数

阈值与置信度集中在此处，默认值来自 sylvia.core.config 的环境变量。
"""

from pydantic import BaseModel, Field
from sylvia.core.config import (
    RECOMMENDATIONS_TTL_S,
    WORKFLOW_MAX_ATTEMPTS,
    get_complexity_confidence,
)


class AnalyzerSettings(BaseModel):
    """ML Pattern Analyzer 参数"""

    history_limit: int = Field(default=50, ge=1, description="最多读取的已完成任务数")
    history_days: int = Field(default=90, ge=1, description="已完成任务的回看天数")
    session_days: int = Field(default=30, ge=1, description="会话日志的回看天数")
    min_tasks_for_patterns: int = Field(default=5, ge=1, description="产出完成时段模式的最少任务数")
    min_bucket_samples: int = Field(default=2, ge=1, description="时段桶参与排名的最少样本数")
    top_slots: int = Field(default=3, ge=1)
    scheduling_confidence_samples: int = Field(
        default=20, ge=1, description="调度模式置信度达到 1 所需的样本数"
    )
    complexity_confidence: float | None = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="复杂度模式置信度；None 表示按各难度分组置信度加权推导",
    )
    insights_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    recommendations_ttl_s: int = Field(default=RECOMMENDATIONS_TTL_S, ge=1)


class AssessorSettings(BaseModel):
    """Assessor Agent 参数"""

    recent_limit: int = Field(default=10, ge=1, description="滚动平均使用的近期任务数")
    recent_days: int = Field(default=30, ge=1)


class WorkflowSettings(BaseModel):
    max_attempts: int = Field(default=WORKFLOW_MAX_ATTEMPTS, ge=1)
    backoff_s: float = Field(default=1.0, ge=0.0, description="线性退避基数（秒）")


def load_analyzer_settings() -> AnalyzerSettings:
    """从环境变量加载分析器参数"""
    return AnalyzerSettings(complexity_confidence=get_complexity_confidence())
