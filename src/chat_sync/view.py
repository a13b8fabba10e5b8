from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger

from chat_sync.cache.events import CacheEvent, CacheEventKind
from chat_sync.cache.keys import MESSAGE_SCOPES, SESSIONS_BY_USER
from chat_sync.client import ChatSyncClient
from chat_sync.models import Message, Session
from chat_sync.status import ErrorView, describe_error, error_message

_REDRAW_KINDS = (CacheEventKind.SET, CacheEventKind.ERRORED, CacheEventKind.REMOVED, CacheEventKind.CLEARED)


class ChatView:
    """Text rendering of the client state plus the loop that keeps it current."""

    def __init__(
        self,
        client: ChatSyncClient,
        *,
        line_prefix: str = "",
        short_id_len: int = 8,
        write: Callable[[str], None] = print,
    ):
        self._client = client
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len
        self._write = write
        self._task: asyncio.Task | None = None

    @property
    def client(self) -> ChatSyncClient:
        return self._client

    def short_id(self, value: str) -> str:
        if len(value) <= self._short_id_len:
            return value
        return value[: self._short_id_len]

    def format_session_line(self, session: Session, *, active_session_id: str | None) -> str:
        marker = "*" if session.id == active_session_id else " "
        return (
            f"{self._line_prefix}{marker} {session.title} [{self.short_id(session.id)}] "
            f"(id={session.id}, updated={session.last_updated_at:%Y-%m-%d %H:%M})"
        )

    def format_message_line(self, message: Message) -> str:
        who = message.sender_name or ("you" if message.is_user else "bot")
        return f"{self._line_prefix}#{message.id} {message.timestamp:%H:%M} {who}> {message.content}"

    def render_sessions(self) -> list[str]:
        result = self._client.sessions()
        if not result.enabled:
            return [f"{self._line_prefix}(signed out)"]
        if result.is_loading:
            return [f"{self._line_prefix}Loading sessions..."]
        lines = [self.format_session_line(s, active_session_id=self._client.current_session_id) for s in result.payload]
        if not lines:
            lines.append(f"{self._line_prefix}No sessions yet. Use /new to start one.")
        view = describe_error(result.error) if result.is_error else None
        if view is not None:
            lines.append(f"{self._line_prefix}! {error_message(view)} (/retry)")
        return lines

    def render_messages(self) -> list[str]:
        session_id = self._client.current_session_id
        if session_id is None:
            return [f"{self._line_prefix}No session selected."]
        result = self._client.recent_messages(session_id)
        lines: list[str] = []
        if self._client.network.offline:
            lines.append(f"{self._line_prefix}! {error_message(ErrorView.OFFLINE)} (/retry)")
        if result.is_loading or (not result.enabled and not result.payload):
            lines.append(f"{self._line_prefix}Loading messages...")
            return lines
        view = describe_error(result.error) if result.is_error else None
        if view is not None:
            lines.append(f"{self._line_prefix}! {error_message(view)} (/retry)")
        lines.extend(self.format_message_line(m) for m in result.payload)
        if not result.payload and view is None:
            lines.append(f"{self._line_prefix}New conversation. Say something!")
        return lines

    def redraw(self) -> None:
        for line in self.render_messages():
            self._write(line)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def run(self) -> None:
        subscription = self._client.store.listen()
        try:
            async for event in subscription:
                if self._is_relevant(event):
                    self._react(event)
        finally:
            subscription.close()

    def _is_relevant(self, event: CacheEvent) -> bool:
        if event.kind is CacheEventKind.CLEARED:
            return True
        if event.key is None:
            return False
        if event.key[0] == SESSIONS_BY_USER:
            return True
        return event.key[0] in MESSAGE_SCOPES and event.key[1] == self._client.current_session_id

    def _react(self, event: CacheEvent) -> None:
        if event.kind is CacheEventKind.INVALIDATED:
            # next access refetches; the view is that access
            self._client.sessions()
            self._client.recent_messages()
            return
        if event.key is not None and event.key[0] == SESSIONS_BY_USER:
            if event.kind in (CacheEventKind.SET, CacheEventKind.UPDATED):
                # the message key depends on the list; reading it enables the fetch
                self._client.recent_messages()
            return
        if event.kind in _REDRAW_KINDS and event.key is not None and event.key[0] in MESSAGE_SCOPES:
            logger.debug(f"Redrawing after {event.kind.value} {event.key}")
            self.redraw()
