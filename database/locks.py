"""Блокировки записи аукционов внутри процесса

Все изменения строки аукциона (ставки, переходы статуса, "горячий" флаг)
выполняются под блокировкой этого аукциона: чтение, проверка, запись и commit.
В PostgreSQL дополнительно используется SELECT ... FOR UPDATE, в SQLite
блокировки строк нет, поэтому блокировка процесса здесь единственная.
"""
import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable

# Ключ общего флага is_hot: он затрагивает несколько строк сразу
HOT_KEY = "is_hot"


class AuctionLocks:
    """Реестр asyncio.Lock по ID аукциона"""

    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._holders: defaultdict[Hashable, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Эксклюзивный доступ к аукциону (или к флагу is_hot) на время блока"""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                # Никто не ждет - запись можно удалить
                del self._holders[key]
                del self._locks[key]

    def hold_hot(self):
        return self.hold(HOT_KEY)

    def __len__(self) -> int:
        return len(self._locks)


auction_locks = AuctionLocks()
