"""EventBus SQLite 实现 -- 追加写入的命名事件流

stream_entries 表 append-only：entry_id 自增，即流内游标（等价于 Redis Stream ID）。
读取方持有游标 after_id，只读取 entry_id > after_id 的条目；
无新条目时在 asyncio.Condition 上等待至多 block_ms，进程内发布会提前唤醒。
"""

import asyncio
from datetime import UTC, datetime

import aiosqlite
from pydantic import ValidationError

from ..models.event import EventBase, StreamEntry, decode_event, encode_event
from .serialization import to_iso
from .transaction import TransactionManager


class SqliteEventBus:
    """EventBus 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection, tx: TransactionManager) -> None:
        self._conn = conn
        self._tx = tx
        self._cond = asyncio.Condition()
        self._version = 0
        tx.add_commit_hook(self.notify)

    async def append(self, stream: str, event: EventBase) -> int:
        """追加事件，返回 entry_id

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        cursor = await self._conn.execute(
            """
            INSERT INTO stream_entries (stream, type, payload, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                stream,
                event.type,
                encode_event(event),
                to_iso(datetime.now(UTC)),
            ),
        )
        return cursor.lastrowid

    async def publish(self, stream: str, event: EventBase) -> int:
        """追加并立即提交（提交后唤醒阻塞读取方）"""
        async with self._tx.atomic():
            entry_id = await self.append(stream, event)
        return entry_id

    async def notify(self) -> None:
        """唤醒所有阻塞在 read() 上的读取方"""
        async with self._cond:
            self._version += 1
            self._cond.notify_all()

    async def latest_id(self, stream: str) -> int:
        """流内最新 entry_id（空流为 0），用作 "$" 游标"""
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(entry_id), 0) FROM stream_entries WHERE stream = ?",
            (stream,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def prune(self, stream: str, before: datetime, up_to_id: int) -> int:
        """删除 before 之前写入、且 entry_id <= up_to_id 的条目，返回删除条数

        up_to_id 传消费方已确认的游标，尚未消费的条目不会被删除。
        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        cursor = await self._conn.execute(
            """
            DELETE FROM stream_entries
            WHERE stream = ? AND created_at < ? AND entry_id <= ?
            """,
            (stream, to_iso(before), up_to_id),
        )
        return cursor.rowcount

    async def read(
        self,
        stream: str,
        after_id: int,
        block_ms: int = 0,
        count: int = 10,
    ) -> list[StreamEntry]:
        """读取 after_id 之后的条目

        Args:
            stream: 流名称
            after_id: 游标，返回 entry_id > after_id 的条目
            block_ms: 无新条目时的最长等待时间，0 表示不等待
            count: 单次最多返回条目数

        Returns:
            按 entry_id 升序的 StreamEntry 列表；无法解码的条目 event 为 None
        """
        version = self._version
        entries = await self._fetch(stream, after_id, count)
        if entries or block_ms <= 0:
            return entries

        try:
            async with self._cond:
                await asyncio.wait_for(
                    self._cond.wait_for(lambda: self._version != version),
                    timeout=block_ms / 1000,
                )
        except TimeoutError:
            return []
        return await self._fetch(stream, after_id, count)

    async def _fetch(self, stream: str, after_id: int, count: int) -> list[StreamEntry]:
        cursor = await self._conn.execute(
            """
            SELECT entry_id, payload FROM stream_entries
            WHERE stream = ? AND entry_id > ?
            ORDER BY entry_id ASC
            LIMIT ?
            """,
            (stream, after_id, count),
        )
        rows = await cursor.fetchall()
        return [self._row_to_entry(stream, row) for row in rows]

    @staticmethod
    def _row_to_entry(stream: str, row: aiosqlite.Row) -> StreamEntry:
        raw = row[1]
        try:
            event = decode_event(raw)
        except ValidationError:
            event = None
        return StreamEntry(entry_id=row[0], stream=stream, event=event, raw=raw)
