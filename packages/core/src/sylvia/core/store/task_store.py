"""TaskStore SQLite 实现

仅提供数据库操作；事件发射与缓存镜像由 TaskService 负责。
注意：写方法不自动提交事务，需由调用方管理事务。
"""

from datetime import date, datetime
from typing import Any

import aiosqlite

from ..models.score import ScoredTask
from ..models.task import Task, TaskFilters
from .serialization import dumps, from_iso, loads, row_to_dict, to_iso

_TASK_COLUMNS = (
    "task_id",
    "user_id",
    "parent_id",
    "title",
    "description",
    "status",
    "priority",
    "progress",
    "estimated_hours",
    "actual_hours",
    "due_at",
    "scheduled_at",
    "started_at",
    "completed_at",
    "tags",
    "context",
    "created_at",
    "updated_at",
)

_TIME_COLUMNS = {
    "due_at",
    "scheduled_at",
    "started_at",
    "completed_at",
    "created_at",
    "updated_at",
}
_JSON_COLUMNS = {"tags", "context"}

# update_fields 允许写入的列（task_id / user_id / parent_id / created_at 不可变）
_MUTABLE_COLUMNS = set(_TASK_COLUMNS) - {"task_id", "user_id", "parent_id", "created_at"}

_SELECT_TASK = "SELECT " + ", ".join(_TASK_COLUMNS) + " FROM tasks"

_SCORE_COLUMNS = (
    "difficulty",
    "innovation",
    "quality",
    "speed",
    "overall_score",
    "xp_earned",
    "user_satisfaction",
)

_SELECT_SCORED = (
    "SELECT "
    + ", ".join(f"t.{c}" for c in _TASK_COLUMNS)
    + ", "
    + ", ".join(f"s.{c}" for c in _SCORE_COLUMNS)
    + " FROM tasks t LEFT JOIN task_scores s ON t.task_id = s.task_id"
)


def _encode_value(column: str, value: Any) -> Any:
    if column in _TIME_COLUMNS:
        return to_iso(value)
    if column in _JSON_COLUMNS:
        return dumps(value)
    if hasattr(value, "value"):  # StrEnum
        return value.value
    return value


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> None:
        """插入任务记录"""
        data = task.model_dump()
        placeholders = ", ".join("?" for _ in _TASK_COLUMNS)
        await self._conn.execute(
            f"INSERT INTO tasks ({', '.join(_TASK_COLUMNS)}) VALUES ({placeholders})",
            tuple(_encode_value(c, data[c]) for c in _TASK_COLUMNS),
        )

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            f"{_SELECT_TASK} WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def update_fields(self, task_id: str, fields: dict[str, Any]) -> Task | None:
        """部分字段更新

        Returns:
            更新后的 Task；task_id 不存在时返回 None
        """
        unknown = set(fields) - _MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"不可更新的字段: {sorted(unknown)}")
        if fields:
            assignments = ", ".join(f"{c} = ?" for c in fields)
            cursor = await self._conn.execute(
                f"UPDATE tasks SET {assignments} WHERE task_id = ?",
                (*(_encode_value(c, v) for c, v in fields.items()), task_id),
            )
            if cursor.rowcount == 0:
                return None
        return await self.get_task(task_id)

    async def delete_task(self, task_id: str) -> bool:
        """删除任务（子任务经外键级联删除）"""
        cursor = await self._conn.execute(
            "DELETE FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        return cursor.rowcount > 0

    async def list_user_tasks(
        self,
        user_id: str,
        filters: TaskFilters | None = None,
    ) -> list[Task]:
        """按用户查询任务列表，按 created_at 倒序"""
        filters = filters or TaskFilters()
        clauses = ["user_id = ?"]
        params: list[Any] = [user_id]

        if filters.status is not None:
            clauses.append("status = ?")
            params.append(filters.status.value)
        if filters.parent_id is not None:
            clauses.append("parent_id = ?")
            params.append(filters.parent_id)
        elif filters.root_only:
            clauses.append("parent_id IS NULL")
        if filters.due_before is not None:
            clauses.append("due_at IS NOT NULL AND due_at <= ?")
            params.append(to_iso(filters.due_before))
        if filters.tags:
            placeholders = ", ".join("?" for _ in filters.tags)
            clauses.append(
                "EXISTS (SELECT 1 FROM json_each(tasks.tags) "
                f"WHERE json_each.value IN ({placeholders}))"
            )
            params.extend(filters.tags)

        cursor = await self._conn.execute(
            f"{_SELECT_TASK} WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at DESC, task_id DESC",
            tuple(params),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def get_subtasks(self, parent_id: str) -> list[Task]:
        """查询直接子任务，按创建顺序"""
        cursor = await self._conn.execute(
            f"{_SELECT_TASK} WHERE parent_id = ? ORDER BY created_at ASC, task_id ASC",
            (parent_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def list_completed_with_scores(
        self,
        user_id: str,
        since: datetime,
        limit: int,
    ) -> list[ScoredTask]:
        """查询 since 之后完成的任务（联结评分），按完成时间倒序"""
        cursor = await self._conn.execute(
            f"""
            {_SELECT_SCORED}
            WHERE t.user_id = ? AND t.status = 'done'
              AND t.completed_at IS NOT NULL AND t.completed_at > ?
            ORDER BY t.completed_at DESC
            LIMIT ?
            """,
            (user_id, to_iso(since), limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_scored(row) for row in rows]

    async def list_calendar_tasks(
        self,
        user_id: str,
        start: date,
        end: date,
    ) -> list[ScoredTask]:
        """查询日历区间内的任务（联结评分）

        日历日期优先级：due_at > completed_at > created_at。
        """
        start_s, end_s = start.isoformat(), end.isoformat()
        cursor = await self._conn.execute(
            f"""
            {_SELECT_SCORED}
            WHERE t.user_id = ?
              AND (
                (t.due_at IS NOT NULL AND substr(t.due_at, 1, 10) BETWEEN ? AND ?)
                OR (t.due_at IS NULL AND t.completed_at IS NOT NULL
                    AND substr(t.completed_at, 1, 10) BETWEEN ? AND ?)
                OR (t.due_at IS NULL AND t.completed_at IS NULL
                    AND substr(t.created_at, 1, 10) BETWEEN ? AND ?)
              )
            ORDER BY t.created_at ASC
            """,
            (user_id, start_s, end_s, start_s, end_s, start_s, end_s),
        )
        rows = await cursor.fetchall()
        return [self._row_to_scored(row) for row in rows]

    async def count_completions_by_day(
        self,
        user_id: str,
        since: datetime,
    ) -> dict[date, int]:
        """统计 since 之后每天（UTC）的完成数"""
        cursor = await self._conn.execute(
            """
            SELECT substr(completed_at, 1, 10) AS day, COUNT(*)
            FROM tasks
            WHERE user_id = ? AND status = 'done'
              AND completed_at IS NOT NULL AND completed_at >= ?
            GROUP BY day
            ORDER BY day
            """,
            (user_id, to_iso(since)),
        )
        rows = await cursor.fetchall()
        return {date.fromisoformat(row[0]): row[1] for row in rows}

    @staticmethod
    def _decode_task_fields(data: dict[str, Any]) -> dict[str, Any]:
        for column in _TIME_COLUMNS:
            data[column] = from_iso(data[column])
        data["tags"] = loads(data["tags"], [])
        data["context"] = loads(data["context"], {})
        return data

    @classmethod
    def _row_to_task(cls, row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(**cls._decode_task_fields(row_to_dict(_TASK_COLUMNS, row)))

    @classmethod
    def _row_to_scored(cls, row: aiosqlite.Row) -> ScoredTask:
        """将联结查询行转换为 ScoredTask"""
        data = cls._decode_task_fields(
            row_to_dict(_TASK_COLUMNS + _SCORE_COLUMNS, row)
        )
        return ScoredTask(**{k: v for k, v in data.items() if k in ScoredTask.model_fields})
