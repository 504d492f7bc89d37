"""Backoff policy for calls to rate-limited external services."""

import asyncio
import enum
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUS = 429
SERVER_ERROR_STATUS = 500


class ErrorKind(enum.Enum):
    """How a failed call should be treated by the retry loop."""

    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with jitter."""

    max_retries: int = 5
    base_delay_seconds: float = 0.8
    max_jitter_seconds: float = 0.25

    def should_retry(self, kind: ErrorKind, attempt: int) -> bool:
        """Return True when a failure on ``attempt`` (0-based) should be retried."""
        return kind is ErrorKind.RETRYABLE and attempt < self.max_retries

    def delay_for(self, attempt: int, jitter: float | None = None) -> float:
        """Return seconds to wait before the next attempt."""
        if jitter is None:
            jitter = random.uniform(0, self.max_jitter_seconds)  # noqa: S311
        return self.base_delay_seconds * (2**attempt) + jitter


def status_code_from_exception(exc: BaseException) -> int | None:
    """Extract an HTTP status code from a client exception, if present."""
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    return None


def classify_error(exc: BaseException) -> ErrorKind:
    """Classify an exception as retryable (429 or 5xx) or fatal."""
    status_code = status_code_from_exception(exc)
    if status_code is None:
        return ErrorKind.FATAL
    if status_code == RATE_LIMIT_STATUS or status_code >= SERVER_ERROR_STATUS:
        return ErrorKind.RETRYABLE
    return ErrorKind.FATAL


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    *,
    action: str,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call ``func`` and retry transient failures with backoff."""
    resolved = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            return await func()
        except Exception as exc:
            kind = classify_error(exc)
            if not resolved.should_retry(kind, attempt):
                raise
            delay = resolved.delay_for(attempt)
            _logger.warning(
                "%s failed (attempt %s/%s, status=%s), retrying in %.2fs: %s",
                action,
                attempt + 1,
                resolved.max_retries + 1,
                status_code_from_exception(exc),
                delay,
                exc,
            )
            attempt += 1
            await sleep(delay)
