from __future__ import annotations

from collections.abc import Hashable

CacheKey = tuple[Hashable, ...]

SESSIONS_BY_USER = "sessions-by-user"
RECENT_MESSAGES = "recent-messages"
SESSION_MESSAGES = "session-messages"

MESSAGE_SCOPES = (RECENT_MESSAGES, SESSION_MESSAGES)


def sessions_by_user_key(user_id: int) -> CacheKey:
    return (SESSIONS_BY_USER, user_id)


def recent_messages_key(session_id: str, count: int, session_exists: bool) -> CacheKey:
    return (RECENT_MESSAGES, session_id, count, session_exists)


def session_messages_key(session_id: str) -> CacheKey:
    return (SESSION_MESSAGES, session_id)


def message_prefixes(session_id: str) -> list[CacheKey]:
    """Prefixes covering every message cache of a session, whatever its trailing parameters."""
    return [(scope, session_id) for scope in MESSAGE_SCOPES]


def key_matches(key: CacheKey, prefix: CacheKey) -> bool:
    return len(prefix) <= len(key) and key[: len(prefix)] == prefix


def references_session(key: CacheKey, session_id: str) -> bool:
    return len(key) >= 2 and key[0] in MESSAGE_SCOPES and key[1] == session_id
