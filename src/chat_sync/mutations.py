from __future__ import annotations

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from chat_sync.api import ChatApi
from chat_sync.cache.entry import CacheEntry
from chat_sync.cache.keys import message_prefixes, sessions_by_user_key
from chat_sync.cache.store import CacheStore
from chat_sync.errors import ChatApiError, NotFoundError, UnauthorizedError
from chat_sync.models import Message, Session
from chat_sync.retry import NO_RETRY, WRITE_RETRY, RetryPolicy, call_with_retry, classified
from chat_sync.selection import SessionSelection


class MutationKind(str, Enum):
    CREATE_SESSION = "createSession"
    DELETE_SESSION = "deleteSession"
    DELETE_MESSAGE = "deleteMessage"
    SEND_MESSAGE = "sendMessage"


class MutationState(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "inFlight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Applied:
    """An optimistic edit; ``snapshot`` is the entry as it was before."""

    snapshot: CacheEntry
    removed: Any
    index: int


@dataclass(frozen=True)
class Confirmed:
    payload: Any


@dataclass(frozen=True)
class RolledBack:
    error: BaseException
    restored: bool


MutationOutcome = Applied | Confirmed | RolledBack


@dataclass
class Mutation:
    id: int
    kind: MutationKind
    payload: dict[str, Any]
    state: MutationState = MutationState.IDLE
    outcomes: list[MutationOutcome] = field(default_factory=list)
    result: Any = None
    error: BaseException | None = None

    @property
    def outcome(self) -> MutationOutcome | None:
        return self.outcomes[-1] if self.outcomes else None

    @property
    def is_settled(self) -> bool:
        return self.state in (MutationState.SUCCEEDED, MutationState.FAILED)

    def record(self, outcome: MutationOutcome) -> None:
        self.outcomes.append(outcome)

    def start(self) -> None:
        self._move(MutationState.IDLE, MutationState.IN_FLIGHT)

    def succeed(self, result: Any) -> None:
        self._move(MutationState.IN_FLIGHT, MutationState.SUCCEEDED)
        self.result = result

    def fail(self, error: BaseException) -> None:
        self._move(MutationState.IN_FLIGHT, MutationState.FAILED)
        self.error = error

    def _move(self, expected: MutationState, target: MutationState) -> None:
        if self.state is not expected:
            raise RuntimeError(f"Mutation {self.id} ({self.kind.value}) cannot go from {self.state.value} to {target.value}")
        self.state = target


UnauthorizedHandler = Callable[[UnauthorizedError], None]


class MutationEngine:
    """Write side of the sync engine.

    Each call creates a fresh ``Mutation`` that goes idle -> inFlight ->
    succeeded|failed. On success the affected cache entries are written,
    invalidated or removed; on failure optimistic edits are undone and the
    classified error is raised to the caller.
    """

    def __init__(
        self,
        store: CacheStore,
        api: ChatApi,
        selection: SessionSelection,
        *,
        on_unauthorized: UnauthorizedHandler | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._api = api
        self._selection = selection
        self._on_unauthorized = on_unauthorized
        self._sleep = sleep
        self._ids = itertools.count(1)
        self._pending: list[Mutation] = []
        self._history: dict[MutationKind, Mutation] = {}

    async def mutate(self, kind: MutationKind | str, payload: dict[str, Any]) -> Any:
        kind = MutationKind(kind)
        handlers: dict[MutationKind, Callable[..., Awaitable[Any]]] = {
            MutationKind.CREATE_SESSION: self.create_session,
            MutationKind.DELETE_SESSION: self.delete_session,
            MutationKind.DELETE_MESSAGE: self.delete_message,
            MutationKind.SEND_MESSAGE: self.send_message,
        }
        return await handlers[kind](**payload)

    def pending(self, kind: MutationKind | None = None) -> list[Mutation]:
        return [m for m in self._pending if kind is None or m.kind is kind]

    def last(self, kind: MutationKind) -> Mutation | None:
        return self._history.get(kind)

    # -- operations --

    async def create_session(self, user_id: int, title: str | None = None) -> Session:
        mutation = self._new(MutationKind.CREATE_SESSION, {"user_id": user_id, "title": title})
        key = sessions_by_user_key(user_id)

        def on_success(session: Session) -> None:
            def insert(sessions: tuple[Session, ...]) -> tuple[Session, ...]:
                return (session,) + tuple(s for s in sessions if s.id != session.id)

            if self._store.update(key, insert) is None:
                self._store.seed(key, (session,))
            self._selection.select(session.id)

        return await self._execute(
            mutation,
            lambda: self._api.create_session(user_id, title),
            WRITE_RETRY,
            on_success=on_success,
        )

    async def delete_session(self, user_id: int, session_id: str) -> None:
        mutation = self._new(MutationKind.DELETE_SESSION, {"user_id": user_id, "session_id": session_id})
        key = sessions_by_user_key(user_id)

        prior = self._store.update(key, lambda sessions: tuple(s for s in sessions if s.id != session_id))
        applied: Applied | None = None
        if prior is not None and prior.payload is not None:
            index = next((i for i, s in enumerate(prior.payload) if s.id == session_id), -1)
            if index >= 0:
                applied = Applied(snapshot=prior, removed=prior.payload[index], index=index)
                mutation.record(applied)

        def on_success(_: Any) -> None:
            for prefix in message_prefixes(session_id):
                self._store.remove(prefix)
            # a list fetched while the delete was in flight may still carry it
            self._store.update(key, lambda sessions: tuple(s for s in sessions if s.id != session_id))
            entry = self._store.get(key)
            remaining = {s.id for s in entry.payload} if entry is not None and entry.payload is not None else None
            before = prior.payload if prior is not None and prior.payload is not None else ()
            self._selection.select_after_removal(before, session_id, remaining)

        def rollback(error: BaseException) -> None:
            restored = self._undo_removal(key, applied)
            mutation.record(RolledBack(error=error, restored=restored))
            if isinstance(error, NotFoundError):
                self._store.invalidate(key)

        await self._execute(
            mutation,
            lambda: self._api.delete_session(session_id),
            NO_RETRY,
            on_success=on_success,
            rollback=rollback,
        )

    async def delete_message(self, session_id: str, message_id: int) -> None:
        mutation = self._new(MutationKind.DELETE_MESSAGE, {"session_id": session_id, "message_id": message_id})

        def on_success(_: Any) -> None:
            for prefix in message_prefixes(session_id):
                self._store.invalidate(prefix)

        await self._execute(
            mutation,
            lambda: self._api.delete_message(message_id),
            NO_RETRY,
            on_success=on_success,
        )

    async def send_message(
        self,
        session_id: str,
        *,
        user_id: int,
        content: str,
        sender_name: str,
        is_user: bool = True,
    ) -> Message:
        mutation = self._new(
            MutationKind.SEND_MESSAGE,
            {"session_id": session_id, "user_id": user_id, "content": content},
        )

        def on_success(message: Message) -> None:
            for prefix in message_prefixes(session_id):
                self._store.invalidate(prefix)
            self._store.update(
                sessions_by_user_key(user_id),
                lambda sessions: tuple(s.with_touch(message.timestamp) if s.id == session_id else s for s in sessions),
            )

        return await self._execute(
            mutation,
            lambda: self._api.send_message(
                session_id,
                user_id=user_id,
                content=content,
                sender_name=sender_name,
                is_user=is_user,
            ),
            WRITE_RETRY,
            on_success=on_success,
        )

    # -- plumbing --

    def _new(self, kind: MutationKind, payload: dict[str, Any]) -> Mutation:
        mutation = Mutation(id=next(self._ids), kind=kind, payload=payload)
        self._history[kind] = mutation
        return mutation

    async def _execute(
        self,
        mutation: Mutation,
        call: Callable[[], Awaitable[Any]],
        policy: RetryPolicy,
        *,
        on_success: Callable[[Any], None],
        rollback: Callable[[BaseException], None] | None = None,
    ) -> Any:
        mutation.start()
        self._pending.append(mutation)
        logger.info(f"Mutation {mutation.id} {mutation.kind.value} started: {mutation.payload}")
        try:
            result = await call_with_retry(
                classified(call),
                policy,
                label=f"mutation {mutation.kind.value}",
                sleep=self._sleep,
            )
        except ChatApiError as error:
            logger.error(f"Mutation {mutation.id} {mutation.kind.value} failed: {error.describe()}")
            if rollback is not None:
                rollback(error)
            mutation.fail(error)
            if isinstance(error, UnauthorizedError) and self._on_unauthorized is not None:
                self._on_unauthorized(error)
            raise
        except asyncio.CancelledError as error:
            logger.warning(f"Mutation {mutation.id} {mutation.kind.value} cancelled; undoing local changes")
            if rollback is not None:
                rollback(error)
            mutation.fail(error)
            raise
        finally:
            self._pending.remove(mutation)

        on_success(result)
        mutation.record(Confirmed(payload=result))
        mutation.succeed(result)
        logger.info(f"Mutation {mutation.id} {mutation.kind.value} succeeded")
        return result

    def _undo_removal(self, key: Any, applied: Applied | None) -> bool:
        if applied is None:
            return False
        entry = self._store.get(key)
        if entry is None or entry.payload is None:
            return False
        removed = applied.removed
        if any(s.id == removed.id for s in entry.payload):
            return True

        untouched = tuple(s for s in applied.snapshot.payload if s.id != removed.id)
        if entry.payload == untouched:
            self._store.restore(applied.snapshot)
        else:
            index = min(applied.index, len(entry.payload))
            self._store.update(key, lambda sessions: sessions[:index] + (removed,) + sessions[index:])
        logger.info(f"Rolled back optimistic removal of {removed.id}")
        return True
