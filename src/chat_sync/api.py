from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

from chat_sync import endpoints
from chat_sync.errors import UnclassifiedError
from chat_sync.models import Message, Session
from chat_sync.transport import Transport

T = TypeVar("T")


def _decode(label: str, data: Any, parse: Callable[[Any], T]) -> T:
    try:
        return parse(data)
    except (KeyError, TypeError, ValueError) as ex:
        raise UnclassifiedError(f"Malformed {label} payload: {ex}") from ex


def _decode_list(label: str, data: Any, parse: Callable[[dict], T]) -> tuple[T, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        raise UnclassifiedError(f"Malformed {label} payload: expected a list, got {type(data).__name__}")
    return tuple(_decode(label, item, parse) for item in data)


class ChatApi:
    """Typed calls for the chat backend's session and message resources."""

    def __init__(self, transport: Transport):
        self._transport = transport

    async def list_sessions(self, user_id: int) -> tuple[Session, ...]:
        data = await self._transport.send("GET", endpoints.sessions_by_user(user_id))
        return _decode_list("session list", data, Session.from_api)

    async def create_session(self, user_id: int, title: str | None = None) -> Session:
        body: dict[str, Any] = {"userId": user_id}
        if title:
            body["title"] = title
        data = await self._transport.send("POST", endpoints.SESSIONS, body)
        return _decode("session", data, Session.from_api)

    async def delete_session(self, session_id: str) -> None:
        await self._transport.send("DELETE", endpoints.session(session_id))

    async def recent_messages(self, session_id: str, count: int = endpoints.DEFAULT_RECENT_COUNT) -> tuple[Message, ...]:
        data = await self._transport.send(
            "GET",
            endpoints.recent_messages(session_id),
            params={"count": count},
        )
        return _decode_list("message list", data, Message.from_api)

    async def session_messages(self, session_id: str) -> tuple[Message, ...]:
        data = await self._transport.send("GET", endpoints.CHAT_MESSAGES, params={"sessionId": session_id})
        return _decode_list("message list", data, Message.from_api)

    async def delete_message(self, message_id: int) -> None:
        await self._transport.send("DELETE", endpoints.message(message_id))

    async def send_message(
        self,
        session_id: str,
        *,
        user_id: int,
        content: str,
        sender_name: str,
        is_user: bool = True,
    ) -> Message:
        body = {
            "sessionId": session_id,
            "userId": user_id,
            "content": content,
            "senderName": sender_name,
            "isUser": is_user,
        }
        data = await self._transport.send("POST", endpoints.CHAT_MESSAGES, body)
        return _decode("message", data, Message.from_api)
