from __future__ import annotations


class ChatApiError(Exception):
    """A transport failure classified into the client's error taxonomy."""

    kind = "unclassified"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        method: str | None = None,
        path: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.method = method
        self.path = path

    def describe(self) -> str:
        target = f"{self.method} {self.path}" if self.method and self.path else (self.path or "request")
        status = f"HTTP {self.status_code}" if self.status_code is not None else self.kind
        return f"{target} failed ({status}): {self.message}"


class NotFoundError(ChatApiError):
    kind = "not-found"


class UnauthorizedError(ChatApiError):
    kind = "unauthorized"


class ServerError(ChatApiError):
    kind = "server-error"


class NetworkUnreachableError(ChatApiError):
    kind = "network-unreachable"


class UnclassifiedError(ChatApiError):
    kind = "unclassified"


def classify_status(
    status_code: int,
    message: str,
    *,
    method: str | None = None,
    path: str | None = None,
) -> ChatApiError:
    if status_code == 401:
        cls: type[ChatApiError] = UnauthorizedError
    elif status_code == 404:
        cls = NotFoundError
    elif status_code >= 500:
        cls = ServerError
    else:
        cls = UnclassifiedError
    return cls(message, status_code=status_code, method=method, path=path)


def is_transient(error: BaseException) -> bool:
    return isinstance(error, (ServerError, NetworkUnreachableError))
