"""
In-process serialization of import and rollback work per chat.

Pairs with ``SELECT ... FOR UPDATE`` on the chat row, which covers
multi-worker PostgreSQL deployments; SQLite ignores it, so within one process
this lock is what keeps two imports into the same chat from interleaving.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager


class ChatLockRegistry:
    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, chat_id: int) -> asyncio.Lock:
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[chat_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, chat_id: int):
        lock = self.lock_for(chat_id)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


chat_locks = ChatLockRegistry()
