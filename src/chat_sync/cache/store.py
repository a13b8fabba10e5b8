from __future__ import annotations

import asyncio
import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from loguru import logger

from chat_sync.cache.entry import CacheEntry, EntryStatus
from chat_sync.cache.events import CacheEvent, CacheEventKind, CacheListener, CacheSubscription
from chat_sync.cache.keys import CacheKey, key_matches
from chat_sync.errors import ChatApiError


@dataclass(frozen=True)
class Flight:
    key: CacheKey
    generation: int
    task: asyncio.Task


class CacheStore:
    """Key-addressed cache of fetched collections.

    The store is the only owner of cache entries. Callers receive frozen
    snapshots and change state through the methods below; every transition is
    announced to subscribers synchronously once it has been applied.

    Each key carries a generation number. ``begin_fetch``, ``invalidate``,
    ``remove`` and ``clear`` move it forward, so a fetch that completes after
    its key was invalidated is stored as stale, and one that completes after
    its key was removed is dropped.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._generations: dict[CacheKey, int] = {}
        self._flights: dict[CacheKey, Flight] = {}
        self._edited_in_flight: set[CacheKey] = set()
        self._listeners: list[CacheListener] = []
        self._counter = itertools.count(1)

    def now(self) -> float:
        return self._clock()

    # -- reads --

    def get(self, key: CacheKey) -> CacheEntry | None:
        return self._entries.get(key)

    def keys(self, prefix: CacheKey = ()) -> list[CacheKey]:
        return [key for key in self._entries if key_matches(key, prefix)]

    def generation(self, key: CacheKey) -> int:
        return self._generations.get(key, 0)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # -- writes --

    def set(self, key: CacheKey, payload: tuple[Any, ...], *, generation: int | None = None) -> CacheEntry | None:
        """Store a fetched payload as fresh.

        With ``generation`` the write belongs to a fetch; it is dropped if the key
        was removed (or refetched by a newer flight) meanwhile, and kept as stale
        if the key was only invalidated. When the entry was edited locally while
        the fetch was on the wire, the local payload wins and stays stale.
        """
        status = EntryStatus.FRESH
        if generation is not None and self._is_superseded(key, generation):
            current = self._entries.get(key)
            if current is None or self._has_newer_flight(key, generation):
                logger.debug(f"Dropping superseded result for {key}")
                return None
            status = EntryStatus.STALE
            if key in self._edited_in_flight:
                logger.debug(f"Keeping local edits of {key} over an older fetch result")
                self._edited_in_flight.discard(key)
                payload = current.payload if current.payload is not None else payload

        entry = CacheEntry(key=key, payload=tuple(payload), status=status, fetched_at=self.now(), error=None)
        self._entries[key] = entry
        self._emit(CacheEventKind.SET, key, entry)
        return entry

    def update(self, key: CacheKey, edit: Callable[[tuple[Any, ...]], tuple[Any, ...]]) -> CacheEntry | None:
        """Rewrite a loaded payload in place, keeping its freshness. Returns the prior snapshot."""
        prior = self._entries.get(key)
        if prior is None or prior.payload is None:
            return None
        entry = replace(prior, payload=tuple(edit(prior.payload)))
        self._entries[key] = entry
        self._supersede_flight(key)
        self._emit(CacheEventKind.UPDATED, key, entry)
        return prior

    def restore(self, snapshot: CacheEntry) -> None:
        """Put back a snapshot previously returned by ``update``."""
        entry = self._entries.get(snapshot.key)
        if entry is None:
            return
        self._entries[snapshot.key] = replace(entry, payload=snapshot.payload)
        self._emit(CacheEventKind.UPDATED, snapshot.key, self._entries[snapshot.key])

    def seed(self, key: CacheKey, payload: tuple[Any, ...]) -> CacheEntry:
        """Create an entry from local knowledge only; it is refetched on next access."""
        entry = CacheEntry(key=key, payload=tuple(payload), status=EntryStatus.STALE)
        self._entries[key] = entry
        self._supersede_flight(key)
        self._emit(CacheEventKind.UPDATED, key, entry)
        return entry

    def begin_fetch(self, key: CacheKey) -> int:
        generation = next(self._counter)
        self._generations[key] = generation
        self._edited_in_flight.discard(key)
        prior = self._entries.get(key) or CacheEntry(key=key)
        entry = replace(prior, status=EntryStatus.FETCHING)
        self._entries[key] = entry
        self._emit(CacheEventKind.FETCHING, key, entry)
        return generation

    def fail(self, key: CacheKey, error: ChatApiError, *, generation: int | None = None) -> CacheEntry | None:
        """Record a failed fetch; the previous payload stays readable.

        A failure of a fetch whose key was invalidated or edited meanwhile leaves
        the entry stale, so the next read fetches it again.
        """
        status = EntryStatus.ERRORED
        if generation is not None and self._is_superseded(key, generation):
            if key not in self._entries or self._has_newer_flight(key, generation):
                return None
            status = EntryStatus.STALE
            self._edited_in_flight.discard(key)
        prior = self._entries.get(key) or CacheEntry(key=key)
        entry = replace(prior, status=status, error=error)
        self._entries[key] = entry
        self._emit(CacheEventKind.ERRORED, key, entry)
        return entry

    def invalidate(self, prefix: CacheKey) -> list[CacheKey]:
        matched = self.keys(prefix)
        for key in matched:
            self._generations[key] = next(self._counter)
            entry = self._entries[key]
            if entry.status is not EntryStatus.FETCHING:
                entry = replace(entry, status=EntryStatus.STALE)
                self._entries[key] = entry
            self._emit(CacheEventKind.INVALIDATED, key, entry)
        if matched:
            logger.debug(f"Invalidated {len(matched)} cache entr{'y' if len(matched) == 1 else 'ies'} under {prefix}")
        return matched

    def remove(self, prefix: CacheKey) -> list[CacheKey]:
        matched = self.keys(prefix)
        for key in matched:
            self._generations[key] = next(self._counter)
            self._flights.pop(key, None)
            self._edited_in_flight.discard(key)
            del self._entries[key]
            self._emit(CacheEventKind.REMOVED, key, None)
        if matched:
            logger.debug(f"Removed {len(matched)} cache entr{'y' if len(matched) == 1 else 'ies'} under {prefix}")
        return matched

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        self._generations.clear()
        self._flights.clear()
        self._edited_in_flight.clear()
        logger.info(f"Cache cleared ({count} entries)")
        self._emit(CacheEventKind.CLEARED, None, None)

    # -- in-flight fetches --

    def flight(self, key: CacheKey) -> Flight | None:
        return self._flights.get(key)

    def is_current(self, flight: Flight) -> bool:
        return self._flights.get(flight.key) is flight and flight.generation == self.generation(flight.key)

    def track(self, key: CacheKey, generation: int, task: asyncio.Task) -> Flight:
        flight = Flight(key=key, generation=generation, task=task)
        self._flights[key] = flight
        task.add_done_callback(lambda _: self._release(flight))
        return flight

    def _supersede_flight(self, key: CacheKey) -> None:
        # a fetch started before a local write may not reflect it
        if key in self._flights:
            self._generations[key] = next(self._counter)
            self._edited_in_flight.add(key)

    def _is_superseded(self, key: CacheKey, generation: int) -> bool:
        return generation != self.generation(key)

    def _has_newer_flight(self, key: CacheKey, generation: int) -> bool:
        newer = self._flights.get(key)
        return newer is not None and newer.generation != generation

    def _release(self, flight: Flight) -> None:
        if self._flights.get(flight.key) is flight:
            del self._flights[flight.key]

    # -- observers --

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def listen(self) -> CacheSubscription:
        return CacheSubscription(self.subscribe)

    def _emit(self, kind: CacheEventKind, key: CacheKey | None, entry: CacheEntry | None) -> None:
        event = CacheEvent(kind=kind, key=key, entry=entry)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as ex:
                logger.error(f"Cache listener failed on {kind.value} {key}: {ex}")
