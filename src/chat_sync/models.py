from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class AuthorKind(str, Enum):
    USER = "user"
    SYSTEM = "system"


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def default_session_title(created_at: datetime) -> str:
    return f"Session {created_at.strftime('%Y-%m-%d %H:%M')}"


@dataclass(frozen=True)
class Message:
    id: int
    session_id: str
    author: AuthorKind
    sender_name: str
    content: str
    timestamp: datetime
    user_id: int | None = None

    @property
    def is_user(self) -> bool:
        return self.author is AuthorKind.USER

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Message:
        return cls(
            id=int(data["id"]),
            session_id=str(data["sessionId"]),
            author=AuthorKind.USER if data.get("isUser") else AuthorKind.SYSTEM,
            sender_name=str(data.get("senderName") or ""),
            content=str(data.get("content") or ""),
            timestamp=parse_timestamp(data["timestamp"]),
            user_id=int(data["userId"]) if data.get("userId") is not None else None,
        )


@dataclass(frozen=True)
class Session:
    id: str
    user_id: int
    title: str
    created_at: datetime
    last_updated_at: datetime
    messages: tuple[Message, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # lastUpdatedAt never precedes createdAt
        if self.last_updated_at < self.created_at:
            object.__setattr__(self, "last_updated_at", self.created_at)

    def with_touch(self, timestamp: datetime) -> Session:
        if timestamp <= self.last_updated_at:
            return self
        return replace(self, last_updated_at=timestamp)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Session:
        created_at = parse_timestamp(data["createdAt"])
        last_updated = data.get("lastUpdatedAt") or data.get("updatedAt")
        title = data.get("title")
        raw_messages = data.get("messages") or []
        return cls(
            id=str(data["id"]),
            user_id=int(data["userId"]),
            title=title.strip() if isinstance(title, str) and title.strip() else default_session_title(created_at),
            created_at=created_at,
            last_updated_at=parse_timestamp(last_updated) if last_updated else created_at,
            messages=tuple(Message.from_api(m) for m in raw_messages),
        )
