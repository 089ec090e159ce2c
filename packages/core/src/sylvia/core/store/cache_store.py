"""CacheStore SQLite 实现 -- Redis 形态的键值原语

hash / set / sorted set / 带 TTL 的 string 四类原语，分别落在 kv_* 表中。
用于任务缓存镜像、用户统计计数器、活跃用户集合、推荐包与日历快照缓存。
注意：写方法不自动提交事务，需由调用方管理事务。
"""

import time
from collections.abc import Callable, Mapping
from typing import Any

import aiosqlite

from .serialization import dumps


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    if hasattr(value, "value"):  # StrEnum
        return str(value.value)
    return dumps(value)


class SqliteCacheStore:
    """CacheStore 的 SQLite 实现

    Args:
        conn: 共享数据库连接
        clock: 返回 epoch 秒的时钟，测试中可替换
    """

    def __init__(
        self,
        conn: aiosqlite.Connection,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._conn = conn
        self._clock = clock

    # ---- hash ----

    async def hset(self, key: str, mapping: Mapping[str, Any]) -> None:
        if not mapping:
            return
        await self._conn.executemany(
            """
            INSERT INTO kv_hashes (key, field, value) VALUES (?, ?, ?)
            ON CONFLICT (key, field) DO UPDATE SET value = excluded.value
            """,
            [(key, field, _to_text(value)) for field, value in mapping.items()],
        )

    async def hgetall(self, key: str) -> dict[str, str]:
        cursor = await self._conn.execute(
            "SELECT field, value FROM kv_hashes WHERE key = ? ORDER BY field",
            (key,),
        )
        rows = await cursor.fetchall()
        return {row[0]: row[1] for row in rows}

    async def hget(self, key: str, field: str) -> str | None:
        cursor = await self._conn.execute(
            "SELECT value FROM kv_hashes WHERE key = ? AND field = ?",
            (key, field),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def hincrby(self, key: str, field: str, amount: int) -> int:
        """整数自增，字段不存在时按 0 处理；返回自增后的值"""
        current = await self.hget(key, field)
        new_value = int(current or 0) + amount
        await self.hset(key, {field: new_value})
        return new_value

    async def delete(self, key: str) -> None:
        """删除 key 下所有类型的数据"""
        for table in ("kv_hashes", "kv_sets", "kv_zsets", "kv_strings"):
            await self._conn.execute(f"DELETE FROM {table} WHERE key = ?", (key,))

    # ---- set ----

    async def sadd(self, key: str, *members: str) -> int:
        """添加成员，返回新增数量"""
        added = 0
        for member in members:
            cursor = await self._conn.execute(
                "INSERT OR IGNORE INTO kv_sets (key, member) VALUES (?, ?)",
                (key, member),
            )
            added += cursor.rowcount
        return added

    async def sismember(self, key: str, member: str) -> bool:
        cursor = await self._conn.execute(
            "SELECT 1 FROM kv_sets WHERE key = ? AND member = ?",
            (key, member),
        )
        return await cursor.fetchone() is not None

    async def smembers(self, key: str) -> set[str]:
        cursor = await self._conn.execute(
            "SELECT member FROM kv_sets WHERE key = ?",
            (key,),
        )
        rows = await cursor.fetchall()
        return {row[0] for row in rows}

    async def srem(self, key: str, member: str) -> bool:
        cursor = await self._conn.execute(
            "DELETE FROM kv_sets WHERE key = ? AND member = ?",
            (key, member),
        )
        return cursor.rowcount > 0

    # ---- sorted set ----

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> None:
        await self._conn.executemany(
            """
            INSERT INTO kv_zsets (key, member, score) VALUES (?, ?, ?)
            ON CONFLICT (key, member) DO UPDATE SET score = excluded.score
            """,
            [(key, member, score) for member, score in mapping.items()],
        )

    async def zrevrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        """按分数倒序返回 [start, stop] 区间的成员（闭区间，stop=-1 表示到末尾）"""
        limit = -1 if stop < 0 else stop - start + 1
        cursor = await self._conn.execute(
            """
            SELECT member FROM kv_zsets WHERE key = ?
            ORDER BY score DESC, member DESC
            LIMIT ? OFFSET ?
            """,
            (key, limit, start),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def zrem(self, key: str, member: str) -> None:
        await self._conn.execute(
            "DELETE FROM kv_zsets WHERE key = ? AND member = ?",
            (key, member),
        )

    # ---- string with ttl ----

    async def setex(self, key: str, ttl_s: int, value: str) -> None:
        await self._conn.execute(
            """
            INSERT INTO kv_strings (key, value, expires_at) VALUES (?, ?, ?)
            ON CONFLICT (key) DO UPDATE SET
                value = excluded.value,
                expires_at = excluded.expires_at
            """,
            (key, value, self._clock() + ttl_s),
        )

    async def get(self, key: str) -> str | None:
        """读取未过期的值；已过期视为不存在"""
        cursor = await self._conn.execute(
            "SELECT value, expires_at FROM kv_strings WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        if row[1] is not None and row[1] <= self._clock():
            return None
        return row[0]

    async def ttl(self, key: str) -> int:
        """剩余秒数；-2 表示不存在或已过期，-1 表示永不过期"""
        cursor = await self._conn.execute(
            "SELECT expires_at FROM kv_strings WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        if row is None:
            return -2
        if row[0] is None:
            return -1
        remaining = row[0] - self._clock()
        if remaining <= 0:
            return -2
        return int(round(remaining))
