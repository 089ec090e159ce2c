"""packages/core 测试配置 -- 可控时钟"""

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sylvia.core.store import StoreGroup
from sylvia.core.task_service import TaskService


class MutableClock:
    """可手动推进的时钟"""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(datetime(2025, 3, 10, 9, 0, tzinfo=UTC))


@pytest_asyncio.fixture
async def clocked_service(store_group: StoreGroup, clock: MutableClock) -> TaskService:
    """使用可控时钟的 TaskService"""
    return TaskService(store_group, clock=clock)
