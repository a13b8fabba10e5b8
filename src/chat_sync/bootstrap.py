from __future__ import annotations

from dataclasses import dataclass

from chat_sync.api import ChatApi
from chat_sync.app_config import AppConfig, RuntimeEnv
from chat_sync.auth import AuthSession
from chat_sync.client import ChatSyncClient
from chat_sync.logging_config import setup_logging
from chat_sync.transport import HttpTransport


@dataclass
class AppRuntime:
    client: ChatSyncClient
    auth: AuthSession
    transport: HttpTransport
    base_url: str
    log_descriptions: list[str]

    async def close(self) -> None:
        self.client.close()
        await self.transport.close()


def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    auth = AuthSession()
    if env.user_id is not None and env.api_token:
        auth.sign_in(env.user_id, env.api_token, env.display_name)

    base_url = env.api_base_url or app.api_base_url
    transport = HttpTransport(
        base_url,
        token_provider=lambda: auth.token,
        timeout=app.request_timeout_seconds,
    )
    client = ChatSyncClient(
        ChatApi(transport),
        auth,
        stale_after_ms=app.stale_after_ms,
        recent_count=app.recent_message_count,
    )
    return AppRuntime(
        client=client,
        auth=auth,
        transport=transport,
        base_url=base_url,
        log_descriptions=log_descriptions,
    )
