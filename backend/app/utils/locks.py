"""
In-process single-writer locks keyed by session id.

Mutations of one batch session run one at a time; the optimistic version
column on the row catches writers in other processes.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List


class SessionLockRegistry:
    def __init__(self):
        # key -> [lock, holders and waiters]
        self._locks: Dict[str, List] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str):
        entry = self._locks.setdefault(key, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]


session_locks = SessionLockRegistry()
