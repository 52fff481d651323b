"""Bounded async retry with backoff, jitter, and cancellation.

Provides:
- RetryPolicy (attempts, exponential backoff, cap, uniform jitter)
- CancelToken checked before every attempt and every sleep
- retry_async, the single retry loop used for all generation units
- No-op metrics and logging interfaces implemented in backend.app.utils
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from backend.app.errors import GenerationCancelledError, RetryExhaustedError

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class CancelToken:
    """Token for cancellation signaling."""

    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def throw_if_cancelled(self) -> None:
        """Raise GenerationCancelledError if cancelled."""
        if self.cancelled:
            raise GenerationCancelledError("generation cancelled")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and delay schedule for one unit of work."""

    max_attempts: int = 3
    backoff_initial_ms: int = 0
    backoff_multiplier: float = 2.0
    backoff_max_ms: int = 4000
    jitter_ms: int = 0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        backoff_ms = 0.0
        if self.backoff_initial_ms > 0:
            backoff_ms = min(
                self.backoff_initial_ms * self.backoff_multiplier ** (attempt - 1),
                self.backoff_max_ms,
            )
        if self.jitter_ms > 0:
            backoff_ms += random.uniform(0, self.jitter_ms)
        return backoff_ms / 1000


# Metrics interface (implemented by backend.app.utils.metrics)
class GenerationMetrics:
    """Interface for generation metrics."""

    def record_latency(self, kind: str, outcome: str, latency_ms: float) -> None:
        """Record model call latency."""
        pass

    def inc_error(self, kind: str, reason: str) -> None:
        """Increment error counter."""
        pass

    def inc_retry(self, kind: str) -> None:
        """Increment retry counter."""
        pass

    def inc_pipeline_run(self, material_type: str, outcome: str) -> None:
        """Increment pipeline run counter."""
        pass

    def inc_difficulty_fallback(self, content_type: str) -> None:
        """Increment difficulty fallback counter."""
        pass


# Logging interface (implemented by backend.app.utils.logging)
class GenerationLogger:
    """Interface for structured logging."""

    def log_call(
        self, kind: str, outcome: str, latency_ms: float, error_reason: str | None = None
    ) -> None:
        """Log one model call."""
        pass

    def log_retry(self, kind: str, attempt: int, error_reason: str) -> None:
        """Log a failed attempt that will be retried."""
        pass


async def retry_async(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    *,
    is_retryable: Callable[[BaseException], bool],
    cancel_token: CancelToken | None = None,
    sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    on_retry: Callable[[int, BaseException], None] | None = None,
) -> T:
    """Await operation(attempt) until it succeeds or the policy is exhausted.

    Attempts run strictly sequentially; attempt numbers are 1-based.

    Args:
        operation: Coroutine factory taking the attempt number
        policy: Attempt budget and delay schedule
        is_retryable: Errors it rejects propagate immediately
        cancel_token: Checked before each attempt and each sleep
        sleep_fn: Injectable sleep function (default: asyncio.sleep)
        on_retry: Called with (attempt, error) before a retry is scheduled

    Returns:
        The first successful result

    Raises:
        RetryExhaustedError: All attempts failed with retryable errors
        GenerationCancelledError: The token was cancelled
    """
    sleep = sleep_fn or asyncio.sleep
    token = cancel_token or CancelToken()
    last_error: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        token.throw_if_cancelled()
        try:
            return await operation(attempt)
        except Exception as e:
            if not is_retryable(e):
                raise
            last_error = e

        if attempt < policy.max_attempts:
            if on_retry is not None:
                on_retry(attempt, last_error)
            delay = policy.delay_for(attempt)
            if delay > 0:
                token.throw_if_cancelled()
                await sleep(delay)
        else:
            logger.warning(f"Giving up after {attempt} attempt(s): {last_error}")

    raise RetryExhaustedError(policy.max_attempts, last_error) from last_error
