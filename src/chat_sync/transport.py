from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import httpx
from loguru import logger

from chat_sync.errors import NetworkUnreachableError, classify_status


@runtime_checkable
class Transport(Protocol):
    async def send(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: dict[str, Any] | None = None,
    ) -> Any: ...


def unwrap_envelope(data: Any) -> Any:
    """Strip the backend's ``{success, statusCode, message, data}`` wrapper when present."""
    if isinstance(data, dict) and "data" in data and ("success" in data or "statusCode" in data):
        return data["data"]
    return data


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict):
        for field in ("message", "title", "error"):
            value = body.get(field)
            if isinstance(value, str) and value:
                return value
    return resp.text or resp.reason_phrase


class HttpTransport:
    def __init__(
        self,
        base_url: str,
        *,
        token_provider: Callable[[], str | None] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._token_provider = token_provider
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            timeout=timeout,
        )

    async def send(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: dict[str, Any] | None = None,
    ) -> Any:
        method = method.upper()
        headers: dict[str, str] = {}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.debug(f"Request: {method} {path} params={params} body={body!r}")
        try:
            resp = await self._client.request(method, path, json=body, params=params, headers=headers)
        except httpx.TransportError as ex:
            logger.warning(f"Network error on {method} {path}: {type(ex).__name__}: {ex}")
            raise NetworkUnreachableError(
                str(ex) or type(ex).__name__,
                method=method,
                path=path,
            ) from ex

        if resp.status_code >= 400:
            error = classify_status(resp.status_code, _error_message(resp), method=method, path=path)
            logger.warning(f"Response: {method} {path} -> HTTP {resp.status_code} ({error.kind})")
            raise error

        logger.debug(f"Response: {method} {path} -> HTTP {resp.status_code}")
        if not resp.content:
            return None
        return unwrap_envelope(resp.json())

    async def close(self) -> None:
        await self._client.aclose()
