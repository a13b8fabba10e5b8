from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from chat_sync.cache.keys import CacheKey
from chat_sync.errors import ChatApiError


class EntryStatus(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    FRESH = "fresh"
    STALE = "stale"
    ERRORED = "errored"


@dataclass(frozen=True)
class CacheEntry:
    key: CacheKey
    payload: tuple[Any, ...] | None = None
    status: EntryStatus = EntryStatus.IDLE
    fetched_at: float | None = None
    error: ChatApiError | None = None

    @property
    def is_fetching(self) -> bool:
        return self.status is EntryStatus.FETCHING

    def needs_fetch(self, now: float, stale_after_s: float) -> bool:
        """True when the entry was never loaded, was invalidated, or aged past its window."""
        if self.status in (EntryStatus.IDLE, EntryStatus.STALE):
            return True
        if self.status is EntryStatus.FRESH:
            return self.fetched_at is None or now - self.fetched_at >= stale_after_s
        return False
