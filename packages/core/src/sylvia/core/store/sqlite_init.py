"""SQLite 数据库初始化

PRAGMA 配置 + 业务表 / 事件流 / 缓存原语 / 工作流步骤表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL（自引用树，删除父任务级联删除子任务）
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id          TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL,
    parent_id        TEXT REFERENCES tasks(task_id) ON DELETE CASCADE,
    title            TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    status           TEXT NOT NULL DEFAULT 'todo'
                     CHECK (status IN ('todo', 'in_progress', 'blocked', 'done', 'cancelled')),
    priority         INTEGER NOT NULL DEFAULT 3 CHECK (priority BETWEEN 1 AND 5),
    progress         INTEGER NOT NULL DEFAULT 0 CHECK (progress BETWEEN 0 AND 100),
    estimated_hours  REAL,
    actual_hours     REAL,
    due_at           TEXT,
    scheduled_at     TEXT,
    started_at       TEXT,
    completed_at     TEXT,
    tags             TEXT NOT NULL DEFAULT '[]',
    context          TEXT NOT NULL DEFAULT '{}',
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_user_status ON tasks(user_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_due_at ON tasks(due_at) WHERE due_at IS NOT NULL;",
    "CREATE INDEX IF NOT EXISTS idx_tasks_parent ON tasks(parent_id) WHERE parent_id IS NOT NULL;",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON tasks(user_id, created_at DESC);",
]

# task_scores 表 DDL（task_id 唯一，重复评分走 upsert）
_TASK_SCORES_DDL = """
CREATE TABLE IF NOT EXISTS task_scores (
    task_id            TEXT PRIMARY KEY REFERENCES tasks(task_id) ON DELETE CASCADE,
    difficulty         INTEGER NOT NULL CHECK (difficulty BETWEEN 1 AND 5),
    innovation         INTEGER NOT NULL CHECK (innovation BETWEEN 1 AND 5),
    quality            INTEGER NOT NULL CHECK (quality BETWEEN 1 AND 5),
    speed              INTEGER NOT NULL CHECK (speed BETWEEN 1 AND 5),
    overall_score      INTEGER NOT NULL CHECK (overall_score BETWEEN 0 AND 100),
    xp_earned          INTEGER NOT NULL DEFAULT 0,
    user_satisfaction  INTEGER CHECK (user_satisfaction BETWEEN 1 AND 5),
    user_notes         TEXT,
    scored_at          TEXT NOT NULL
);
"""

# task_patterns 表 DDL（每用户每类型一条）
_TASK_PATTERNS_DDL = """
CREATE TABLE IF NOT EXISTS task_patterns (
    user_id           TEXT NOT NULL,
    pattern_type      TEXT NOT NULL,
    pattern_data      TEXT NOT NULL DEFAULT '{}',
    confidence_score  REAL NOT NULL CHECK (confidence_score BETWEEN 0 AND 1),
    sample_size       INTEGER NOT NULL DEFAULT 1,
    tags              TEXT NOT NULL DEFAULT '[]',
    conditions        TEXT NOT NULL DEFAULT '{}',
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL,

    PRIMARY KEY (user_id, pattern_type)
);
"""

_ACHIEVEMENTS_DDL = """
CREATE TABLE IF NOT EXISTS achievements (
    slug          TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    description   TEXT NOT NULL DEFAULT '',
    icon          TEXT NOT NULL DEFAULT '',
    xp_threshold  INTEGER,
    conditions    TEXT
);
"""

_USER_ACHIEVEMENTS_DDL = """
CREATE TABLE IF NOT EXISTS user_achievements (
    user_id    TEXT NOT NULL,
    slug       TEXT NOT NULL REFERENCES achievements(slug) ON DELETE CASCADE,
    earned_at  TEXT NOT NULL,

    PRIMARY KEY (user_id, slug)
);
"""

_CALENDAR_ENTRIES_DDL = """
CREATE TABLE IF NOT EXISTS calendar_entries (
    entry_id            TEXT PRIMARY KEY,
    user_id             TEXT NOT NULL,
    task_id             TEXT REFERENCES tasks(task_id) ON DELETE CASCADE,
    date                TEXT NOT NULL,
    time_blocked_hours  REAL,
    actual_hours        REAL,
    energy_level        INTEGER CHECK (energy_level BETWEEN 1 AND 5),
    focus_score         INTEGER CHECK (focus_score BETWEEN 1 AND 5),
    interruptions       INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT NOT NULL
);
"""

_USER_SESSIONS_DDL = """
CREATE TABLE IF NOT EXISTS user_sessions (
    session_id       TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL,
    started_at       TEXT NOT NULL,
    ended_at         TEXT,
    tasks_created    INTEGER NOT NULL DEFAULT 0,
    tasks_completed  INTEGER NOT NULL DEFAULT 0,
    focus_hours      REAL,
    break_hours      REAL,
    session_type     TEXT NOT NULL DEFAULT 'work',
    metadata         TEXT NOT NULL DEFAULT '{}'
);
"""

_ACTIVITY_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_calendar_entries_user_date ON calendar_entries(user_id, date);",
    "CREATE INDEX IF NOT EXISTS idx_user_sessions_user_started ON user_sessions(user_id, started_at);",
]

# 事件流：append-only，entry_id 即流内游标
_STREAM_ENTRIES_DDL = """
CREATE TABLE IF NOT EXISTS stream_entries (
    entry_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    stream      TEXT NOT NULL,
    type        TEXT NOT NULL,
    payload     TEXT NOT NULL,
    created_at  TEXT NOT NULL
);
"""

_STREAM_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_stream_entries_stream ON stream_entries(stream, entry_id);",
]

# 缓存原语（hash / set / sorted set / 带 TTL 的 string）
_KV_DDL = [
    """
    CREATE TABLE IF NOT EXISTS kv_hashes (
        key    TEXT NOT NULL,
        field  TEXT NOT NULL,
        value  TEXT NOT NULL,
        PRIMARY KEY (key, field)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS kv_sets (
        key     TEXT NOT NULL,
        member  TEXT NOT NULL,
        PRIMARY KEY (key, member)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS kv_zsets (
        key     TEXT NOT NULL,
        member  TEXT NOT NULL,
        score   REAL NOT NULL,
        PRIMARY KEY (key, member)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS kv_strings (
        key         TEXT PRIMARY KEY,
        value       TEXT NOT NULL,
        expires_at  REAL
    );
    """,
]

# 工作流步骤记忆：同一 run_id 重复投递时已完成步骤直接返回
_WORKFLOW_STEPS_DDL = """
CREATE TABLE IF NOT EXISTS workflow_steps (
    run_id        TEXT NOT NULL,
    step_name     TEXT NOT NULL,
    result        TEXT NOT NULL,
    completed_at  TEXT NOT NULL,

    PRIMARY KEY (run_id, step_name)
);
"""


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    for ddl in [
        _TASKS_DDL,
        _TASK_SCORES_DDL,
        _TASK_PATTERNS_DDL,
        _ACHIEVEMENTS_DDL,
        _USER_ACHIEVEMENTS_DDL,
        _CALENDAR_ENTRIES_DDL,
        _USER_SESSIONS_DDL,
        _STREAM_ENTRIES_DDL,
        *_KV_DDL,
        _WORKFLOW_STEPS_DDL,
    ]:
        await conn.execute(ddl)

    # 创建索引
    for idx_sql in _TASKS_INDEXES + _ACTIVITY_INDEXES + _STREAM_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
