"""Sylvia Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

from pathlib import Path

import aiosqlite

from .achievement_store import DEFAULT_ACHIEVEMENTS, SqliteAchievementStore
from .activity_store import SqliteActivityStore
from .cache_store import SqliteCacheStore
from .event_bus import SqliteEventBus
from .pattern_store import SqlitePatternStore
from .score_store import SqliteScoreStore
from .sqlite_init import init_db, verify_wal_mode
from .task_store import SqliteTaskStore
from .transaction import TransactionManager
from .workflow_store import SqliteWorkflowStepStore


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接与事务管理器"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.tx = TransactionManager(conn)
        self.task_store = SqliteTaskStore(conn)
        self.score_store = SqliteScoreStore(conn)
        self.pattern_store = SqlitePatternStore(conn)
        self.achievement_store = SqliteAchievementStore(conn)
        self.activity_store = SqliteActivityStore(conn)
        self.cache = SqliteCacheStore(conn)
        self.event_bus = SqliteEventBus(conn, self.tx)
        self.workflow_steps = SqliteWorkflowStepStore(conn)

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(
    db_path: str,
    seed_achievements: bool = True,
) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径（":memory:" 用于测试）
        seed_achievements: 是否写入默认成就目录

    Returns:
        StoreGroup 实例
    """
    if db_path != ":memory:":
        # 确保数据库目录存在
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    group = StoreGroup(conn)
    if seed_achievements:
        async with group.tx.atomic():
            await group.achievement_store.seed_defaults()
    return group


__all__ = [
    "StoreGroup",
    "create_store_group",
    "DEFAULT_ACHIEVEMENTS",
    "SqliteAchievementStore",
    "SqliteActivityStore",
    "SqliteCacheStore",
    "SqliteEventBus",
    "SqlitePatternStore",
    "SqliteScoreStore",
    "SqliteTaskStore",
    "SqliteWorkflowStepStore",
    "TransactionManager",
    "init_db",
    "verify_wal_mode",
]
