from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from chat_sync import endpoints
from chat_sync.query import DEFAULT_STALE_AFTER_MS


@dataclass
class RuntimeEnv:
    api_token: str | None
    user_id: int | None
    display_name: str
    api_base_url: str | None


@dataclass
class AppConfig:
    api_base_url: str
    request_timeout_seconds: float
    stale_after_ms: int
    recent_message_count: int
    log_level: str
    log_consumers: list | None


def load_json_config(path: Path | None = None) -> dict:
    config_path = path or Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_int(value: object) -> int | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        api_base_url=str(config.get("ApiBaseUrl", "http://localhost:5000/api")).rstrip("/"),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 30.0)),
        stale_after_ms=int(config.get("StaleAfterMs", DEFAULT_STALE_AFTER_MS)),
        recent_message_count=max(1, int(config.get("RecentMessageCount", endpoints.DEFAULT_RECENT_COUNT))),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        api_token=os.environ.get("CHAT_API_TOKEN") or None,
        user_id=_to_int(os.environ.get("CHAT_USER_ID")),
        display_name=os.environ.get("CHAT_DISPLAY_NAME", ""),
        api_base_url=os.environ.get("CHAT_API_BASE_URL") or None,
    )
