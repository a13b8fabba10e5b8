from __future__ import annotations

from enum import Enum

from chat_sync.cache.events import CacheEvent, CacheEventKind
from chat_sync.cache.store import CacheStore
from chat_sync.errors import ChatApiError, NetworkUnreachableError, ServerError


class ErrorView(str, Enum):
    OFFLINE = "offline"
    SESSION_MISSING = "session-missing"
    FAILED = "failed"


_MESSAGES = {
    ErrorView.OFFLINE: "Cannot reach the server. Check your connection and retry.",
    ErrorView.SESSION_MISSING: "This chat session no longer exists.",
    ErrorView.FAILED: "Could not load data.",
}


def describe_error(error: ChatApiError | None) -> ErrorView | None:
    if error is None:
        return None
    if isinstance(error, NetworkUnreachableError):
        return ErrorView.OFFLINE
    if isinstance(error, ServerError) and error.path and "/session/" in error.path:
        return ErrorView.SESSION_MISSING
    return ErrorView.FAILED


def error_message(view: ErrorView) -> str:
    return _MESSAGES[view]


class NetworkStatus:
    """Tracks whether the last fetch outcome left the client offline.

    The flag is raised by a network-unreachable fetch failure and stays up
    until a fetch succeeds again.
    """

    def __init__(self, store: CacheStore):
        self._offline = False
        self._last_error: ChatApiError | None = None
        self._unsubscribe = store.subscribe(self._on_event)

    @property
    def offline(self) -> bool:
        return self._offline

    @property
    def last_error(self) -> ChatApiError | None:
        return self._last_error

    def close(self) -> None:
        self._unsubscribe()

    def _on_event(self, event: CacheEvent) -> None:
        if event.kind is CacheEventKind.ERRORED and event.entry is not None:
            self._last_error = event.entry.error
            if isinstance(event.entry.error, NetworkUnreachableError):
                self._offline = True
        elif event.kind is CacheEventKind.SET:
            self._offline = False
            self._last_error = None
        elif event.kind is CacheEventKind.CLEARED:
            self._offline = False
            self._last_error = None
