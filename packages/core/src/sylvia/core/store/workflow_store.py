"""WorkflowStepStore SQLite 实现

按 (run_id, step_name) 记忆已完成步骤的结果（JSON 文本）。
同一 run_id 被重新投递时，已记录的步骤直接返回存储值而不重复执行。
"""

from datetime import UTC, datetime

import aiosqlite

from .serialization import to_iso


class SqliteWorkflowStepStore:
    """注意：写方法不自动提交事务，需由调用方管理事务。"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_step(self, run_id: str, step_name: str) -> str | None:
        cursor = await self._conn.execute(
            "SELECT result FROM workflow_steps WHERE run_id = ? AND step_name = ?",
            (run_id, step_name),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def save_step(self, run_id: str, step_name: str, result: str) -> None:
        await self._conn.execute(
            """
            INSERT INTO workflow_steps (run_id, step_name, result, completed_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (run_id, step_name) DO UPDATE SET
                result = excluded.result,
                completed_at = excluded.completed_at
            """,
            (run_id, step_name, result, to_iso(datetime.now(UTC))),
        )

    async def list_steps(self, run_id: str) -> list[str]:
        """按完成顺序返回已记录的步骤名"""
        cursor = await self._conn.execute(
            """
            SELECT step_name FROM workflow_steps
            WHERE run_id = ? ORDER BY completed_at ASC, rowid ASC
            """,
            (run_id,),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def prune(self, before: datetime) -> int:
        """删除最后一个步骤早于 before 的整个 run，返回删除的步骤数

        按 run 整体删除，不会留下只剩部分步骤的记忆。
        """
        cursor = await self._conn.execute(
            """
            DELETE FROM workflow_steps WHERE run_id IN (
                SELECT run_id FROM workflow_steps
                GROUP BY run_id HAVING MAX(completed_at) < ?
            )
            """,
            (to_iso(before),),
        )
        return cursor.rowcount
