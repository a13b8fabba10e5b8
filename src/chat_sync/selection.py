from __future__ import annotations

from collections.abc import Callable, Collection, Sequence

from loguru import logger

from chat_sync.models import Session

SelectionListener = Callable[[str | None], None]


def next_session_id(
    sessions: Sequence[Session],
    removed_id: str,
    remaining: Collection[str] | None = None,
) -> str | None:
    """Pick the session after ``removed_id`` in ``sessions``, else the one before it, else none.

    ``remaining`` restricts the choice to ids that still exist.
    """
    ids = [s.id for s in sessions if s.id == removed_id or remaining is None or s.id in remaining]
    if removed_id not in ids:
        candidates = [sid for sid in ids if sid != removed_id] or sorted(remaining or ())
        return candidates[0] if candidates else None
    index = ids.index(removed_id)
    if index + 1 < len(ids):
        return ids[index + 1]
    if index > 0:
        return ids[index - 1]
    return None


class SessionSelection:
    """The session the view is currently showing."""

    def __init__(self, current_session_id: str | None = None):
        self._current = current_session_id
        self._listeners: list[SelectionListener] = []

    @property
    def current_session_id(self) -> str | None:
        return self._current

    def select(self, session_id: str | None) -> None:
        if session_id == self._current:
            return
        logger.info(f"Current session: {self._current} -> {session_id}")
        self._current = session_id
        for listener in list(self._listeners):
            listener(session_id)

    def clear(self) -> None:
        self.select(None)

    def select_after_removal(
        self,
        sessions: Sequence[Session],
        removed_id: str,
        remaining: Collection[str] | None = None,
    ) -> str | None:
        """Move off ``removed_id`` if it is current. ``sessions`` is the list as it was before removal."""
        if self._current != removed_id:
            return self._current
        self.select(next_session_id(sessions, removed_id, remaining))
        return self._current

    def subscribe(self, listener: SelectionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
