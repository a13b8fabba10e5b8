from __future__ import annotations

from typing import Any

from loguru import logger

from chat_sync.cache.keys import sessions_by_user_key
from chat_sync.cache.store import CacheStore
from chat_sync.errors import NetworkUnreachableError, ServerError
from chat_sync.models import Session
from chat_sync.query import Fetcher


class SessionGuard:
    """Keeps message queries away from sessions the client does not know to exist.

    A session counts as existing only when it appears in the loaded session
    list of the signed-in user. Until that list has loaded, or after the
    session has been dropped from it, message queries stay disabled.
    """

    def __init__(self, store: CacheStore):
        self._store = store

    def known_sessions(self, user_id: int | None) -> tuple[Session, ...] | None:
        if user_id is None:
            return None
        entry = self._store.get(sessions_by_user_key(user_id))
        if entry is None:
            return None
        return entry.payload

    def allows(self, user_id: int | None, session_id: str | None) -> bool:
        if session_id is None:
            return False
        sessions = self.known_sessions(user_id)
        if sessions is None:
            return False
        return any(s.id == session_id for s in sessions)

    def protect(self, user_id: int | None, session_id: str, fetcher: Fetcher) -> Fetcher:
        """Turn a server or network failure of a message fetch into an empty result.

        The failure is read as a sign that the session was deleted elsewhere, so
        the session list is invalidated and re-checked on its next read.
        """

        async def guarded() -> tuple[Any, ...]:
            try:
                return await fetcher()
            except (ServerError, NetworkUnreachableError) as error:
                logger.warning(
                    f"Messages for session {session_id} unavailable ({error.kind}); "
                    f"the session may have been deleted. Refreshing session list."
                )
                if user_id is not None:
                    self._store.invalidate(sessions_by_user_key(user_id))
                return ()

        return guarded
