from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from chat_sync.cache.entry import CacheEntry, EntryStatus
from chat_sync.cache.keys import CacheKey
from chat_sync.cache.store import CacheStore
from chat_sync.errors import ChatApiError, UnauthorizedError
from chat_sync.retry import QUERY_RETRY, RetryPolicy, call_with_retry, classified

Fetcher = Callable[[], Awaitable[tuple[Any, ...]]]
UnauthorizedHandler = Callable[[UnauthorizedError], None]

DEFAULT_STALE_AFTER_MS = 5 * 60 * 1000


@dataclass(frozen=True)
class QueryOptions:
    enabled: bool = True
    stale_after_ms: int = DEFAULT_STALE_AFTER_MS
    retry_policy: RetryPolicy = QUERY_RETRY
    placeholder: tuple[Any, ...] = ()


@dataclass(frozen=True)
class QueryResult:
    key: CacheKey
    payload: tuple[Any, ...]
    status: EntryStatus
    error: ChatApiError | None = None
    enabled: bool = True
    task: asyncio.Task | None = None

    @property
    def is_fetching(self) -> bool:
        return self.status is EntryStatus.FETCHING

    @property
    def is_loading(self) -> bool:
        """Fetching with nothing to show yet."""
        return self.is_fetching and not self.payload

    @property
    def is_error(self) -> bool:
        return self.status is EntryStatus.ERRORED

    @classmethod
    def from_entry(
        cls,
        key: CacheKey,
        entry: CacheEntry | None,
        *,
        placeholder: tuple[Any, ...] = (),
        task: asyncio.Task | None = None,
    ) -> QueryResult:
        if entry is None:
            return cls(key=key, payload=placeholder, status=EntryStatus.IDLE, task=task)
        return cls(
            key=key,
            payload=entry.payload if entry.payload is not None else placeholder,
            status=entry.status,
            error=entry.error,
            task=task,
        )


class QueryEngine:
    """Read side of the sync engine.

    ``query`` answers from the cache immediately and schedules a background
    fetch when the entry is missing, stale or forced. Concurrent requests for
    one key share a single fetch. Failures are recorded on the entry and never
    raised to the caller.
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        on_unauthorized: UnauthorizedHandler | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._on_unauthorized = on_unauthorized
        self._sleep = sleep

    def query(self, key: CacheKey, fetcher: Fetcher, options: QueryOptions | None = None, *, force: bool = False) -> QueryResult:
        options = options or QueryOptions()
        if not options.enabled:
            return self._disabled(key, options)

        entry = self._store.get(key)
        task: asyncio.Task | None = None
        if force or self._needs_fetch(key, entry, options):
            task = self._start(key, fetcher, options)
        else:
            flight = self._store.flight(key)
            task = flight.task if flight is not None else None
        return QueryResult.from_entry(key, self._store.get(key), placeholder=options.placeholder, task=task)

    async def fetch(self, key: CacheKey, fetcher: Fetcher, options: QueryOptions | None = None, *, force: bool = False) -> QueryResult:
        """Like ``query`` but waits for any pending fetch of ``key`` to settle."""
        options = options or QueryOptions()
        result = self.query(key, fetcher, options, force=force)
        if result.task is None:
            return result
        await asyncio.wait([result.task])
        return QueryResult.from_entry(key, self._store.get(key), placeholder=options.placeholder)

    async def refetch(self, key: CacheKey, fetcher: Fetcher, options: QueryOptions | None = None) -> QueryResult:
        return await self.fetch(key, fetcher, options, force=True)

    def _disabled(self, key: CacheKey, options: QueryOptions) -> QueryResult:
        return QueryResult(key=key, payload=options.placeholder, status=EntryStatus.IDLE, enabled=False)

    def _needs_fetch(self, key: CacheKey, entry: CacheEntry | None, options: QueryOptions) -> bool:
        if entry is None:
            return True
        if entry.is_fetching:
            flight = self._store.flight(key)
            return flight is None or not self._store.is_current(flight)
        return entry.needs_fetch(self._store.now(), options.stale_after_ms / 1000)

    def _start(self, key: CacheKey, fetcher: Fetcher, options: QueryOptions) -> asyncio.Task:
        flight = self._store.flight(key)
        if flight is not None and self._store.is_current(flight):
            return flight.task

        previous = flight.task if flight is not None else None
        generation = self._store.begin_fetch(key)
        task = asyncio.create_task(self._run(key, fetcher, options, generation, previous))
        self._store.track(key, generation, task)
        return task

    async def _run(
        self,
        key: CacheKey,
        fetcher: Fetcher,
        options: QueryOptions,
        generation: int,
        previous: asyncio.Task | None,
    ) -> None:
        if previous is not None and not previous.done():
            # a superseded fetch is still on the wire; one request per key at a time
            await asyncio.wait([previous])

        logger.debug(f"Fetching {key}")
        try:
            payload = await call_with_retry(
                classified(fetcher),
                options.retry_policy,
                label=f"query {key[0]}",
                sleep=self._sleep,
            )
        except UnauthorizedError as error:
            logger.error(f"Query {key} unauthorized: {error.message}")
            self._store.fail(key, error, generation=generation)
            if self._on_unauthorized is not None:
                self._on_unauthorized(error)
        except ChatApiError as error:
            logger.error(f"Query {key} failed: {error.describe()}")
            self._store.fail(key, error, generation=generation)
        else:
            logger.debug(f"Fetched {key}: {len(payload)} item(s)")
            self._store.set(key, payload, generation=generation)
