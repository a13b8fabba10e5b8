from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type

from chat_sync.errors import ChatApiError, NotFoundError, UnauthorizedError, UnclassifiedError, is_transient

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    transient_retries: int = 2
    other_retries: int = 1
    backoff_base_ms: int = 1000
    backoff_max_ms: int = 30_000

    def allowed_retries(self, error: BaseException) -> int:
        if isinstance(error, (NotFoundError, UnauthorizedError)):
            return 0
        if is_transient(error):
            return self.transient_retries
        if isinstance(error, ChatApiError):
            return self.other_retries
        return 0

    def backoff_ms(self, failed_attempts: int) -> int:
        return min(self.backoff_base_ms * 2**failed_attempts, self.backoff_max_ms)


QUERY_RETRY = RetryPolicy()
WRITE_RETRY = RetryPolicy(transient_retries=1, other_retries=0)
NO_RETRY = RetryPolicy(transient_retries=0, other_retries=0)


def _stop(policy: RetryPolicy) -> Callable[[RetryCallState], bool]:
    def should_stop(retry_state: RetryCallState) -> bool:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if exc is None:
            return True
        return retry_state.attempt_number > policy.allowed_retries(exc)

    return should_stop


def _wait(policy: RetryPolicy) -> Callable[[RetryCallState], float]:
    def wait(retry_state: RetryCallState) -> float:
        return policy.backoff_ms(retry_state.attempt_number) / 1000

    return wait


def _on_retry(label: str) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        attempt = retry_state.attempt_number
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        reason = exc.kind if isinstance(exc, ChatApiError) else type(exc).__name__
        logger.warning(f"{label}: {reason}. Retrying in {wait:.0f}s (attempt {attempt} failed)...")

    return log


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "request",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``fn`` until it succeeds or the policy allows no further attempt for its error.

    Only ``ChatApiError`` is retried; anything else is raised on first sight.
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception_type(ChatApiError),
        stop=_stop(policy),
        wait=_wait(policy),
        before_sleep=_on_retry(label),
        sleep=sleep,
        reraise=True,
    )
    return await retrying(fn)


def classified(fn: Callable[[], Awaitable[T]]) -> Callable[[], Awaitable[T]]:
    """Wrap ``fn`` so any non-API failure surfaces as ``UnclassifiedError``."""

    async def call() -> T:
        try:
            return await fn()
        except ChatApiError:
            raise
        except Exception as ex:
            logger.error(f"Unexpected {type(ex).__name__} during request: {ex}")
            raise UnclassifiedError(f"{type(ex).__name__}: {ex}") from ex

    return call
