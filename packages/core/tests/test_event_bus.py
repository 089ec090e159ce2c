"""SqliteEventBus 单元测试 -- 游标语义、阻塞读取、坏条目、保留期清理"""

import asyncio
from datetime import UTC, datetime, timedelta

from sylvia.core.config import ML_STREAM, TASK_STREAM
from sylvia.core.models import DailyAnalysisEvent, TaskCreatedEvent
from sylvia.core.store.serialization import to_iso


class TestEventBusCursor:
    async def test_read_after_cursor_in_order(self, store_group):
        bus = store_group.event_bus
        ids = [
            await bus.publish(TASK_STREAM, TaskCreatedEvent(user_id="u1", task_id=f"t{i}"))
            for i in range(3)
        ]

        entries = await bus.read(TASK_STREAM, ids[0])
        assert [e.entry_id for e in entries] == ids[1:]
        assert [e.event.task_id for e in entries] == ["t1", "t2"]

    async def test_count_limits_batch(self, store_group):
        bus = store_group.event_bus
        for i in range(5):
            await bus.publish(TASK_STREAM, DailyAnalysisEvent(user_id=f"u{i}"))

        assert len(await bus.read(TASK_STREAM, 0, count=2)) == 2

    async def test_streams_are_independent(self, store_group):
        bus = store_group.event_bus
        await bus.publish(TASK_STREAM, DailyAnalysisEvent(user_id="u1"))

        assert await bus.latest_id(TASK_STREAM) == 1
        assert await bus.latest_id(ML_STREAM) == 0
        assert await bus.read(ML_STREAM, 0) == []


class TestEventBusBlocking:
    async def test_block_times_out_empty(self, store_group):
        entries = await store_group.event_bus.read(TASK_STREAM, 0, block_ms=50)
        assert entries == []

    async def test_notify_wakes_without_entries(self, store_group):
        """notify() 唤醒读取方，无新条目时返回空列表"""
        bus = store_group.event_bus
        reader = asyncio.create_task(bus.read(TASK_STREAM, 0, block_ms=5000))
        await asyncio.sleep(0.05)
        await bus.notify()

        assert await asyncio.wait_for(reader, timeout=2) == []


class TestUndecodableEntries:
    async def test_bad_payload_yields_entry_without_event(self, store_group):
        """无法解码的条目保留原始内容，event 为 None"""
        async with store_group.tx.atomic() as conn:
            await conn.execute(
                """
                INSERT INTO stream_entries (stream, type, payload, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (TASK_STREAM, "TASK_EXPLODED", '{"type": "TASK_EXPLODED"}', to_iso(datetime.now(UTC))),
            )

        entries = await store_group.event_bus.read(TASK_STREAM, 0)
        assert len(entries) == 1
        assert entries[0].event is None
        assert "TASK_EXPLODED" in entries[0].raw



class TestPrune:
    async def test_prune_keeps_recent_and_unconsumed(self, store_group):
        bus = store_group.event_bus
        ids = [
            await bus.publish(TASK_STREAM, DailyAnalysisEvent(user_id=f"u{i}")) for i in range(3)
        ]
        old = datetime.now(UTC) - timedelta(days=40)
        async with store_group.tx.atomic() as conn:
            await conn.execute(
                "UPDATE stream_entries SET created_at = ? WHERE entry_id IN (?, ?)",
                (to_iso(old), ids[0], ids[1]),
            )

        cutoff = datetime.now(UTC) - timedelta(days=30)
        async with store_group.tx.atomic():
            removed = await bus.prune(TASK_STREAM, cutoff, up_to_id=ids[0])

        # ids[1] 已过期但尚未被消费，ids[2] 仍在保留期内
        assert removed == 1
        assert [e.entry_id for e in await bus.read(TASK_STREAM, 0)] == ids[1:]
