"""Retry logic for inference calls.

Retries only transient backend failures (network, timeout, rate limit,
5xx). Parse and validation failures are raised immediately without
consuming a retry.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import List, TypeVar

from app.logging_utils import log_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRIABLE_MARKERS = (
    "network",
    "fetch",
    "timeout",
    "timed out",
    "rate limit",
    "429",
    "500",
    "502",
    "503",
    "504",
)


def is_retriable_error(exc: BaseException) -> bool:
    """Classify ``exc`` as a transient backend failure."""
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return True
    message = str(exc).lower()
    if "exceeded" in message and "timeout" in message:
        return True
    return any(marker in message for marker in _RETRIABLE_MARKERS)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff schedule for one inference call."""

    max_attempts: int = 2
    backoff_ms: int = 100
    backoff_multiplier: float = 1.0

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after failed ``attempt`` (1-based)."""
        return (self.backoff_ms / 1000.0) * (self.backoff_multiplier ** max(0, attempt - 1))


class RetryExhaustedError(Exception):
    """Raised when every attempt failed with a retriable error.

    Attributes:
        stage: Stage the call belonged to.
        attempts: Total number of attempts made.
        last_error: The error from the final attempt.
        history: Errors from every failed attempt.
    """

    def __init__(
        self,
        stage: str,
        attempts: int,
        last_error: BaseException,
        history: List[BaseException],
    ) -> None:
        self.stage = stage
        self.attempts = attempts
        self.last_error = last_error
        self.history = history
        super().__init__(
            f"Stage {stage} failed after {attempts} attempt(s). "
            f"Last error: {last_error}"
        )


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    stage_name: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``fn()`` until it succeeds or the attempt budget runs out.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt.
        policy: Attempt budget and backoff schedule.
        stage_name: Stage name used in logs and errors.
        sleep: Awaitable used for the backoff delay.

    Returns:
        The first successful result.

    Raises:
        RetryExhaustedError: If all attempts fail with retriable errors.
        Exception: Any non-retriable error, unchanged, on first occurrence.
    """
    errors: List[BaseException] = []
    total_attempts = max(1, policy.max_attempts)

    for attempt in range(1, total_attempts + 1):
        try:
            result = await fn()
        except Exception as exc:
            if not is_retriable_error(exc):
                raise

            errors.append(exc)
            log_event(
                logger,
                logging.WARNING,
                "inference_retry",
                stage=stage_name,
                attempt=attempt,
                max_attempts=total_attempts,
                error=str(exc),
            )
            if attempt < total_attempts:
                await sleep(policy.backoff(attempt))
            continue

        if attempt > 1:
            logger.info(
                "[%s] inference succeeded on attempt %d/%d",
                stage_name,
                attempt,
                total_attempts,
            )
        return result

    raise RetryExhaustedError(
        stage=stage_name,
        attempts=total_attempts,
        last_error=errors[-1],
        history=errors,
    ) from errors[-1]
