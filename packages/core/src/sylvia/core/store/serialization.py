"""行级编解码辅助

所有时间统一以 UTC ISO 字符串（微秒精度）落盘，保证字符串比较即时间比较。
"""

import json
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any


def to_iso(value: datetime | None) -> str | None:
    """datetime -> UTC ISO 字符串；naive datetime 视为 UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def loads(value: str | None, default: Any) -> Any:
    if not value:
        return default
    return json.loads(value)


def row_to_dict(columns: Sequence[str], row: Sequence[Any]) -> dict[str, Any]:
    """按列名序列把查询结果行转换为 dict（兼容 tuple 与 aiosqlite.Row）"""
    return {name: row[i] for i, name in enumerate(columns)}
