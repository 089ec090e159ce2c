"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、事件流名称、缓存过期时间、编排器轮询间隔等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("SYLVIA_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "SYLVIA_DB_PATH",
        str(_get_base_dir() / "sqlite" / "sylvia.db"),
    )


# 事件流名称
TASK_STREAM: str = "events:task"
ML_STREAM: str = "events:ml"

# 活跃用户集合（每日分析扇出的目标）
ACTIVE_USERS_KEY: str = "active_users"

# ML 推荐包缓存时长（秒）
RECOMMENDATIONS_TTL_S: int = int(
    os.environ.get("SYLVIA_RECOMMENDATIONS_TTL_S", "3600")
)

# 日历分析快照缓存时长（秒）
CALENDAR_CACHE_TTL_S: int = int(os.environ.get("SYLVIA_CALENDAR_CACHE_TTL_S", "300"))

# 编排器阻塞读取等待时间（毫秒）
ORCHESTRATOR_BLOCK_MS: int = int(
    os.environ.get("SYLVIA_ORCHESTRATOR_BLOCK_MS", "5000")
)
ML_BLOCK_MS: int = int(os.environ.get("SYLVIA_ML_BLOCK_MS", "1000"))

# 已消费事件与工作流步骤记忆的保留天数（prune 命令）
RETENTION_DAYS: int = int(os.environ.get("SYLVIA_RETENTION_DAYS", "30"))

# 工作流整体重试次数（仅针对可恢复的 Provider 异常）
WORKFLOW_MAX_ATTEMPTS: int = int(os.environ.get("SYLVIA_WORKFLOW_MAX_ATTEMPTS", "3"))


def get_complexity_confidence() -> float | None:
    """complexity_handling 模式的置信度

    默认固定 0.8；设置为 "derived" 时返回 None，由分析器按各难度分组的样本量推导。
    """
    raw = os.environ.get("SYLVIA_COMPLEXITY_CONFIDENCE", "0.8")
    if raw.lower() == "derived":
        return None
    return float(raw)


def user_tasks_key(user_id: str) -> str:
    return f"user:{user_id}:tasks"


def user_stats_key(user_id: str) -> str:
    return f"user:{user_id}:stats"


def user_achievements_key(user_id: str) -> str:
    return f"user:{user_id}:achievements"


def recommendations_key(user_id: str) -> str:
    return f"user:{user_id}:recommendations"


def task_cache_key(task_id: str) -> str:
    return f"task:{task_id}"
