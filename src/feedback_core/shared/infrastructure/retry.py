"""
Contention Retry
================

Bounded exponential backoff for store operations that lose a race.

Only ``ContentionRetryable`` is retried; every other exception propagates
on the first attempt.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from feedback_core.config import settings
from feedback_core.core import ContentionRetryable
from feedback_core.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for contended operations."""

    max_attempts: int = 5
    initial_delay: float = 0.01
    max_delay: float = 0.5
    multiplier: float = 2.0
    jitter: bool = True

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        """Build a policy from the global settings."""
        return cls(
            max_attempts=settings.contention_max_attempts,
            initial_delay=settings.contention_initial_delay,
            max_delay=settings.contention_max_delay,
        )

    def compute_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (0-based)."""
        capped = min(self.initial_delay * (self.multiplier ** attempt), self.max_delay)
        if self.jitter:
            return capped * (0.9 + random.random() * 0.2)
        return capped


async def retry_on_contention(
    policy: RetryPolicy,
    operation: str,
    fn: Callable[[], Awaitable[T]],
) -> T:
    """
    Run ``fn`` until it succeeds or the policy's attempts are exhausted.

    Raises:
        ContentionRetryable: carrying the total attempt count once exhausted
    """
    last_error: ContentionRetryable | None = None
    for attempt in range(policy.max_attempts):
        try:
            return await fn()
        except ContentionRetryable as e:
            last_error = e
            logger.debug(
                "Store contention, backing off",
                extra={"operation": operation, "attempt": attempt + 1}
            )
            if attempt + 1 < policy.max_attempts:
                await asyncio.sleep(policy.compute_delay(attempt))

    logger.warning(
        "Store contention not resolved",
        extra={"operation": operation, "attempts": policy.max_attempts}
    )
    raise ContentionRetryable(
        operation,
        attempts=policy.max_attempts,
        details=last_error.details if last_error else None
    ) from last_error
