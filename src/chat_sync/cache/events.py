from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from chat_sync.cache.entry import CacheEntry
from chat_sync.cache.keys import CacheKey


class CacheEventKind(str, Enum):
    FETCHING = "fetching"
    SET = "set"
    UPDATED = "updated"
    ERRORED = "errored"
    INVALIDATED = "invalidated"
    REMOVED = "removed"
    CLEARED = "cleared"


@dataclass(frozen=True)
class CacheEvent:
    kind: CacheEventKind
    key: CacheKey | None = None
    entry: CacheEntry | None = None


CacheListener = Callable[[CacheEvent], None]


class CacheSubscription:
    """Queue-backed change channel; a view consumes it with ``async for``."""

    def __init__(self, subscribe: Callable[[CacheListener], Callable[[], None]]):
        self._queue: asyncio.Queue[CacheEvent] = asyncio.Queue()
        self._unsubscribe = subscribe(self._queue.put_nowait)
        self._closed = False

    async def next(self) -> CacheEvent:
        return await self._queue.get()

    def drain(self) -> list[CacheEvent]:
        events: list[CacheEvent] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()

    def __aiter__(self) -> CacheSubscription:
        return self

    async def __anext__(self) -> CacheEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        return await self.next()
