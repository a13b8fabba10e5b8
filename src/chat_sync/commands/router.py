from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_sessions: Callable[[], Awaitable[None]],
        on_new: Callable[[str], Awaitable[None]],
        on_use: Callable[[str], Awaitable[None]],
        on_delete_session: Callable[[str], Awaitable[None]],
        on_delete_message: Callable[[str], Awaitable[None]],
        on_retry: Callable[[], Awaitable[None]],
        on_logout: Callable[[], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_sessions = on_sessions
        self._on_new = on_new
        self._on_use = on_use
        self._on_delete_session = on_delete_session
        self._on_delete_message = on_delete_message
        self._on_retry = on_retry
        self._on_logout = on_logout
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command, _, argument = trimmed.partition(" ")
        argument = argument.strip()

        if command == "/help":
            await self._on_help()
            return True
        if command == "/sessions":
            await self._on_sessions()
            return True
        if command == "/new":
            await self._on_new(argument)
            return True
        if command == "/use":
            await self._on_use(argument)
            return True
        if command == "/delete-session":
            await self._on_delete_session(argument)
            return True
        if command == "/delete":
            await self._on_delete_message(argument)
            return True
        if command == "/retry":
            await self._on_retry()
            return True
        if command == "/logout":
            await self._on_logout()
            return True

        self._on_unknown(trimmed)
        return True
