from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger

DEFAULT_LOG_PATH = ".chat_sync/client.log"

_CONSOLE_FORMAT = "<level>{level:<8}</level> | <cyan>{name}</cyan> - <level>{message}</level>"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"


def _add_console(level: str, options: dict[str, Any]) -> str:
    logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT)
    return f"console (stderr, {level})"


def _add_file(level: str, options: dict[str, Any]) -> str:
    path = str(options.get("path", DEFAULT_LOG_PATH))
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        path,
        level=level,
        format=_FILE_FORMAT,
        rotation=options.get("rotation", "5 MB"),
        retention=options.get("retention", 3),
        enqueue=True,
    )
    return f"file ({path}, {level})"


_SINKS: dict[str, Callable[[str, dict[str, Any]], str]] = {
    "console": _add_console,
    "file": _add_file,
}


def setup_logging(level: str = "INFO", consumers: list[dict[str, Any]] | None = None) -> list[str]:
    """Replace loguru's sinks with ``consumers`` (file only by default; the REPL owns the terminal)."""
    logger.remove()

    descriptions: list[str] = []
    for options in consumers if consumers is not None else [{"type": "file"}]:
        add = _SINKS.get(options.get("type", ""))
        if add is None:
            logger.warning(f"Unknown log consumer type: {options.get('type')!r}")
            continue
        descriptions.append(add(str(options.get("level", level)).upper(), options))
    return descriptions
