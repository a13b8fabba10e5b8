from __future__ import annotations

from collections.abc import Callable

from loguru import logger

AuthListener = Callable[[bool], None]


class AuthSession:
    """Identity handed over by the sign-in flow; the sync engine only reads it."""

    def __init__(self, user_id: int | None = None, token: str | None = None, display_name: str = ""):
        self._user_id = user_id
        self._token = token
        self._display_name = display_name
        self._listeners: list[AuthListener] = []

    @property
    def user_id(self) -> int | None:
        return self._user_id

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def display_name(self) -> str:
        return self._display_name or (f"user-{self._user_id}" if self._user_id is not None else "")

    @property
    def is_authenticated(self) -> bool:
        return self._user_id is not None and bool(self._token)

    def sign_in(self, user_id: int, token: str, display_name: str = "") -> None:
        self._user_id = user_id
        self._token = token
        self._display_name = display_name
        logger.info(f"Signed in as user {user_id}")
        self._notify(True)

    def sign_out(self, reason: str = "") -> None:
        if not self.is_authenticated and self._user_id is None:
            return
        self._user_id = None
        self._token = None
        self._display_name = ""
        logger.warning(f"Signed out{': ' + reason if reason else ''}")
        self._notify(False)

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, authenticated: bool) -> None:
        for listener in list(self._listeners):
            listener(authenticated)
