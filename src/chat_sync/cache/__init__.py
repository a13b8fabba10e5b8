from chat_sync.cache.entry import CacheEntry, EntryStatus
from chat_sync.cache.events import CacheEvent, CacheEventKind, CacheSubscription
from chat_sync.cache.keys import (
    CacheKey,
    message_prefixes,
    recent_messages_key,
    session_messages_key,
    sessions_by_user_key,
)
from chat_sync.cache.store import CacheStore

__all__ = [
    "CacheEntry",
    "CacheEvent",
    "CacheEventKind",
    "CacheKey",
    "CacheStore",
    "CacheSubscription",
    "EntryStatus",
    "message_prefixes",
    "recent_messages_key",
    "session_messages_key",
    "sessions_by_user_key",
]
