from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from chat_sync.auth import AuthSession
from chat_sync.commands.router import CommandRouter
from chat_sync.errors import ChatApiError
from chat_sync.models import Session
from chat_sync.status import describe_error, error_message
from chat_sync.view import ChatView


class ChatShell:
    """Line-oriented front end: slash commands act on sessions, anything else is sent as a message."""

    _LINE_PREFIX = "chat> "

    def __init__(
        self,
        view: ChatView,
        auth: AuthSession,
        *,
        write: Callable[[str], None] = print,
    ):
        self._view = view
        self._client = view.client
        self._auth = auth
        self._write = write
        self._command_router = CommandRouter(
            on_help=self._on_help,
            on_sessions=self._on_sessions,
            on_new=self._on_new,
            on_use=self._on_use,
            on_delete_session=self._on_delete_session,
            on_delete_message=self._on_delete_message,
            on_retry=self._on_retry,
            on_logout=self._on_logout,
            on_unknown=self._on_unknown_command,
        )

    async def handle(self, user_input: str) -> None:
        try:
            if await self._command_router.try_handle(user_input):
                return
            await self._client.send_message(user_input)
        except ChatApiError as ex:
            view = describe_error(ex)
            self._print(f"{ex.describe()}" + (f" ({error_message(view)})" if view is not None else ""))
        except (ValueError, PermissionError) as ex:
            self._print(str(ex))

    def resolve_session(self, identifier: str) -> Session | None:
        """Find a loaded session by full id or unique id prefix."""
        identifier = identifier.strip()
        if not identifier:
            return None
        sessions = self._client.sessions().payload
        for session in sessions:
            if session.id == identifier:
                return session
        matches = [s for s in sessions if s.id.startswith(identifier)]
        if len(matches) > 1:
            raise ValueError(f"Session id prefix is ambiguous: {identifier}")
        return matches[0] if matches else None

    def _print(self, text: str) -> None:
        self._write(f"{self._LINE_PREFIX}{text}")

    async def _on_help(self) -> None:
        self._print("Available commands:")
        self._print("- /help")
        self._print("- /sessions")
        self._print("- /new [title]")
        self._print("- /use <session-id>")
        self._print("- /delete-session <session-id>")
        self._print("- /delete <message-id>")
        self._print("- /retry")
        self._print("- /logout")
        self._print("Anything else is sent to the current session.")

    async def _on_sessions(self) -> None:
        await self._client.load_sessions()
        for line in self._view.render_sessions():
            self._write(line)

    async def _on_new(self, title: str) -> None:
        session = await self._client.create_session(title or None)
        self._print(f"Created session {session.title} [{self._view.short_id(session.id)}]")

    async def _on_use(self, identifier: str) -> None:
        if not identifier:
            self._print("Usage: /use <session-id>")
            return
        session = self.resolve_session(identifier)
        if session is None:
            self._print(f"Session not found: {identifier}")
            return
        self._client.select_session(session.id)
        self._print(f"Switched to {session.title} [{self._view.short_id(session.id)}]")
        await self._client.load_recent_messages()
        self._view.redraw()

    async def _on_delete_session(self, identifier: str) -> None:
        if not identifier:
            self._print("Usage: /delete-session <session-id>")
            return
        session = self.resolve_session(identifier)
        session_id = session.id if session is not None else identifier
        await self._client.delete_session(session_id)
        self._print(f"Deleted session [{self._view.short_id(session_id)}]")

    async def _on_delete_message(self, argument: str) -> None:
        try:
            message_id = int(argument.lstrip("#"))
        except ValueError:
            self._print("Usage: /delete <message-id>")
            return
        await self._client.delete_message(message_id)
        self._print(f"Deleted message #{message_id}")

    async def _on_retry(self) -> None:
        await self._client.refresh_sessions()
        if self._client.current_session_id is not None:
            await self._client.retry_messages()
        self._view.redraw()

    async def _on_logout(self) -> None:
        self._auth.sign_out("signed out by user")
        self._print("Signed out. Restart with CHAT_USER_ID and CHAT_API_TOKEN to sign in again.")

    def _on_unknown_command(self, trimmed: str) -> None:
        logger.debug(f"Unknown command: {trimmed}")
        self._print(f"Unknown command: {trimmed}")
