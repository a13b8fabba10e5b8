from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger

from chat_sync import endpoints
from chat_sync.api import ChatApi
from chat_sync.auth import AuthSession
from chat_sync.cache.entry import EntryStatus
from chat_sync.cache.events import CacheEvent, CacheEventKind
from chat_sync.cache.keys import (
    CacheKey,
    SESSIONS_BY_USER,
    recent_messages_key,
    session_messages_key,
    sessions_by_user_key,
)
from chat_sync.cache.store import CacheStore
from chat_sync.errors import UnauthorizedError
from chat_sync.guard import SessionGuard
from chat_sync.models import Message, Session
from chat_sync.mutations import MutationEngine
from chat_sync.query import DEFAULT_STALE_AFTER_MS, Fetcher, QueryEngine, QueryOptions, QueryResult
from chat_sync.selection import SessionSelection
from chat_sync.status import NetworkStatus

QuerySpec = tuple[CacheKey, Fetcher, QueryOptions]


class ChatSyncClient:
    """Entry point for a view: session and message reads, writes and selection.

    All components share one ``CacheStore``; nothing here keeps its own copy
    of sessions or messages.
    """

    def __init__(
        self,
        api: ChatApi,
        auth: AuthSession,
        *,
        store: CacheStore | None = None,
        selection: SessionSelection | None = None,
        stale_after_ms: int = DEFAULT_STALE_AFTER_MS,
        recent_count: int = endpoints.DEFAULT_RECENT_COUNT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._api = api
        self._auth = auth
        self._stale_after_ms = stale_after_ms
        self._recent_count = recent_count
        self.store = store or CacheStore()
        self.selection = selection or SessionSelection()
        self.guard = SessionGuard(self.store)
        self.network = NetworkStatus(self.store)
        self.queries = QueryEngine(self.store, on_unauthorized=self._handle_unauthorized, sleep=sleep)
        self.mutations = MutationEngine(
            self.store,
            api,
            self.selection,
            on_unauthorized=self._handle_unauthorized,
            sleep=sleep,
        )
        self._unsubscribers = [
            auth.subscribe(self._on_auth_changed),
            self.store.subscribe(self._on_cache_event),
        ]

    @property
    def current_session_id(self) -> str | None:
        return self.selection.current_session_id

    @property
    def auth(self) -> AuthSession:
        return self._auth

    @property
    def user_id(self) -> int | None:
        return self._auth.user_id

    def select_session(self, session_id: str | None) -> None:
        self.selection.select(session_id)

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self.network.close()

    # -- reads --

    def sessions(self) -> QueryResult:
        return self.queries.query(*self._sessions_query())

    async def load_sessions(self) -> QueryResult:
        return await self.queries.fetch(*self._sessions_query())

    async def refresh_sessions(self) -> QueryResult:
        return await self.queries.refetch(*self._sessions_query())

    def recent_messages(self, session_id: str | None = None, count: int | None = None) -> QueryResult:
        return self.queries.query(*self._recent_query(session_id, count))

    async def load_recent_messages(self, session_id: str | None = None, count: int | None = None) -> QueryResult:
        return await self.queries.fetch(*self._recent_query(session_id, count))

    async def retry_messages(self, session_id: str | None = None, count: int | None = None) -> QueryResult:
        """Manual retry for the message view."""
        return await self.queries.refetch(*self._recent_query(session_id, count))

    def messages(self, session_id: str | None = None) -> QueryResult:
        return self.queries.query(*self._messages_query(session_id))

    async def load_messages(self, session_id: str | None = None) -> QueryResult:
        return await self.queries.fetch(*self._messages_query(session_id))

    def _options(self, *, enabled: bool) -> QueryOptions:
        return QueryOptions(enabled=enabled, stale_after_ms=self._stale_after_ms)

    def _sessions_query(self) -> QuerySpec:
        user_id = self._auth.user_id
        key = sessions_by_user_key(user_id) if user_id is not None else (SESSIONS_BY_USER, None)

        async def fetch() -> tuple[Session, ...]:
            return await self._api.list_sessions(user_id)

        return key, fetch, self._options(enabled=self._auth.is_authenticated)

    def _recent_query(self, session_id: str | None, count: int | None) -> QuerySpec:
        session_id = session_id if session_id is not None else self.current_session_id
        count = count or self._recent_count
        user_id = self._auth.user_id
        exists = self._auth.is_authenticated and self.guard.allows(user_id, session_id)

        async def fetch() -> tuple[Message, ...]:
            return await self._api.recent_messages(session_id, count)

        key = recent_messages_key(session_id, count, exists)
        return key, self.guard.protect(user_id, session_id, fetch), self._options(enabled=exists)

    def _messages_query(self, session_id: str | None) -> QuerySpec:
        session_id = session_id if session_id is not None else self.current_session_id
        user_id = self._auth.user_id
        exists = self._auth.is_authenticated and self.guard.allows(user_id, session_id)

        async def fetch() -> tuple[Message, ...]:
            return await self._api.session_messages(session_id)

        key = session_messages_key(session_id)
        return key, self.guard.protect(user_id, session_id, fetch), self._options(enabled=exists)

    # -- writes --

    async def create_session(self, title: str | None = None) -> Session:
        return await self.mutations.create_session(self._require_user(), title)

    async def delete_session(self, session_id: str) -> None:
        await self.mutations.delete_session(self._require_user(), session_id)

    async def delete_message(self, message_id: int, session_id: str | None = None) -> None:
        session_id = session_id if session_id is not None else self.current_session_id
        if session_id is None:
            raise ValueError("No session selected for message deletion")
        await self.mutations.delete_message(session_id, message_id)

    async def send_message(self, content: str, session_id: str | None = None) -> Message:
        user_id = self._require_user()
        session_id = session_id if session_id is not None else self.current_session_id
        if session_id is None:
            raise ValueError("No session selected to send to")
        if not content.strip():
            raise ValueError("Message content is empty")
        return await self.mutations.send_message(
            session_id,
            user_id=user_id,
            content=content.strip(),
            sender_name=self._auth.display_name,
        )

    def _require_user(self) -> int:
        if not self._auth.is_authenticated or self._auth.user_id is None:
            raise PermissionError("Not signed in")
        return self._auth.user_id

    # -- reactions --

    def _handle_unauthorized(self, error: UnauthorizedError) -> None:
        self._auth.sign_out(f"server rejected credentials ({error.describe()})")

    def _on_auth_changed(self, authenticated: bool) -> None:
        if authenticated:
            return
        self.store.clear()
        self.selection.clear()

    def _on_cache_event(self, event: CacheEvent) -> None:
        user_id = self._auth.user_id
        if user_id is None or event.key != sessions_by_user_key(user_id):
            return
        if event.kind is not CacheEventKind.SET or event.entry is None or event.entry.status is not EntryStatus.FRESH:
            return
        current = self.current_session_id
        sessions = event.entry.payload or ()
        if current is None or any(s.id == current for s in sessions):
            return
        logger.info(f"Session {current} is gone from the session list; switching away from it")
        self.selection.select(sessions[0].id if sessions else None)
