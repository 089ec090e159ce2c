"""共享连接上的事务边界

所有 Store 共享同一个 aiosqlite 连接，写方法本身不提交。
写路径统一经 TransactionManager.atomic() 串行化：块内全部写入一起提交，
异常时整体回滚；提交成功后触发 commit hook（例如唤醒事件流阻塞读取方）。
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import aiosqlite

CommitHook = Callable[[], Awaitable[None]]


class TransactionManager:
    """串行化写事务

    注意：atomic() 不可重入，块内不得再次进入 atomic()。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._lock = asyncio.Lock()
        self._commit_hooks: list[CommitHook] = []

    def add_commit_hook(self, hook: CommitHook) -> None:
        self._commit_hooks.append(hook)

    @property
    def in_transaction(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[aiosqlite.Connection]:
        """在同一事务内执行一组写入

        Raises:
            Exception: 块内任何异常都会回滚后原样抛出
        """
        async with self._lock:
            try:
                yield self._conn
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise

        for hook in self._commit_hooks:
            await hook()
