"""Per-conversation asyncio locks: one writer per conversation at a time."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class ConversationLocks:
    """Hands out one ``asyncio.Lock`` per conversation id.

    A lock lives only while some task holds it or waits for it; the last
    task out removes it from the table.  Locks are bound to the event loop
    that first uses them; when the running loop changes (a new
    ``asyncio.run``) the table is started afresh.
    """

    def __init__(self) -> None:
        self._locks: dict[str, _Entry] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

    @asynccontextmanager
    async def lock_for(self, conversation_id: str) -> AsyncIterator[None]:
        """Hold the lock guarding *conversation_id* for the ``async with`` body."""
        loop = asyncio.get_running_loop()
        if loop is not self._loop:
            self._locks = {}
            self._loop = loop
        entry = self._locks.get(conversation_id)
        if entry is None:
            entry = self._locks[conversation_id] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(conversation_id) is entry:
                del self._locks[conversation_id]

    def is_locked(self, conversation_id: str) -> bool:
        entry = self._locks.get(conversation_id)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
