"""Bounded retry with exponential backoff for flaky async calls."""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, TypeVar

from taskhub.config import settings

logger = logging.getLogger("taskhub.retry")

T = TypeVar("T")

RetryObserver = Callable[[BaseException, int, float], None]


def _always_retry(error: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration.

    Delay before retry ``n`` (1-based) is
    ``initial_delay * backoff_factor ** (n - 1)`` seconds. No jitter, no cap.
    """

    attempts: int = 5
    initial_delay: float = 1.0  # seconds
    backoff_factor: float = 2.0
    should_retry: Callable[[BaseException], bool] = _always_retry

    def __post_init__(self):
        if self.attempts < 1:
            raise ValueError(f"attempts must be at least 1, got {self.attempts}")
        if self.initial_delay < 0:
            raise ValueError(f"initial_delay must be non-negative, got {self.initial_delay}")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt``."""
        return self.initial_delay * (self.backoff_factor ** (attempt - 1))

    def with_overrides(self, **overrides: Any) -> "RetryPolicy":
        return replace(self, **overrides) if overrides else self

    @classmethod
    def from_settings(cls, **overrides: Any) -> "RetryPolicy":
        """Policy built from the configured retry defaults."""
        fields: dict[str, Any] = {
            "attempts": settings.retry_attempts,
            "initial_delay": settings.retry_initial_delay_seconds,
            "backoff_factor": settings.retry_backoff_factor,
        }
        fields.update(overrides)
        return cls(**fields)


def _log_retry(error: BaseException, attempt: int, delay: float) -> None:
    logger.warning(f"Retrying (attempt {attempt}) in {delay:.3f}s after error: {error}")


async def retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    on_retry: Optional[RetryObserver] = None,
    **overrides: Any,
) -> T:
    """
    Run ``operation`` until it succeeds or the policy gives up.

    Args:
        operation: Zero-argument coroutine function to invoke per attempt
        policy: Retry policy (defaults to ``RetryPolicy()``)
        on_retry: Observer called as ``(error, attempt, delay)`` before each
            backoff sleep; a warning is logged when omitted
        **overrides: Per-call policy field overrides

    Returns:
        The first successful result

    Raises:
        The last error raised by ``operation``, unchanged. An error rejected by
        ``should_retry`` is raised immediately.

    The operation is not deduplicated; non-idempotent side effects may run
    once per attempt.
    """
    policy = (policy or RetryPolicy()).with_overrides(**overrides)
    observer = on_retry or _log_retry

    for attempt in range(1, policy.attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt == policy.attempts or not policy.should_retry(e):
                raise

            delay = policy.delay_for(attempt)
            observer(e, attempt, delay)
            await asyncio.sleep(delay)

    # Unreachable: the loop either returns or raises.
    raise AssertionError("retry loop exited without result")
