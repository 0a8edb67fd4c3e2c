"""Retry scheduling with backoff for remote completion calls.

Each RetryScheduler.run() call is independent: the scheduler keeps no
mutable state between invocations. Delays are awaited with asyncio.sleep
so unrelated work keeps running while a call backs off.

Backoff by failure kind:
- RateLimitedError: min(base_delay * 2**attempt + jitter, max_delay)
- PayloadTooLargeError: never retried
- anything else: base_delay * (attempt + 1)
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from app.utils.errors import (
    MarkingValidationError,
    PayloadTooLargeError,
    RateLimitedError,
    SizeLimitError,
    TransientFailureError,
)

# Configure logging
logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that retrying cannot fix
NON_RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    PayloadTooLargeError,
    MarkingValidationError,
    SizeLimitError,
)

# Retry configuration
MAX_RETRIES = 3
BASE_DELAY = 2.0  # seconds
MAX_JITTER = 2.0  # seconds
MAX_DELAY = 30.0  # seconds


class RetryPolicy(BaseModel):
    """Stateless retry configuration."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=MAX_RETRIES, ge=0, description="Additional attempts after the first")
    base_delay: float = Field(default=BASE_DELAY, ge=0.0, description="Base backoff delay in seconds")
    max_jitter: float = Field(default=MAX_JITTER, ge=0.0, description="Upper bound of random jitter in seconds")
    max_delay: float = Field(default=MAX_DELAY, ge=0.0, description="Cap for rate-limit backoff in seconds")


class RetryScheduler:
    """Runs an async operation with bounded retries.

    Args:
        policy: Retry configuration (defaults to RetryPolicy())
        rng: Random source for jitter; pass a seeded random.Random for
            deterministic delays
        sleep: Awaitable sleep function (defaults to asyncio.sleep)
        attempt_timeout: Per-attempt timeout in seconds; a timed out
            attempt counts as a transient failure
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        attempt_timeout: Optional[float] = None,
    ):
        self.policy = policy or RetryPolicy()
        self._rng = rng or random.Random()
        self._sleep = sleep
        self.attempt_timeout = attempt_timeout

    def backoff_delay(self, error: BaseException, attempt: int) -> float:
        """Delay in seconds before retrying after a failed attempt (0-based)."""
        policy = self.policy
        if isinstance(error, RateLimitedError):
            delay = policy.base_delay * (2**attempt) + self._rng.random() * policy.max_jitter
            return min(delay, policy.max_delay)
        return policy.base_delay * (attempt + 1)

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.attempt_timeout is None:
            return await operation()
        try:
            return await asyncio.wait_for(operation(), timeout=self.attempt_timeout)
        except asyncio.TimeoutError as e:
            raise TransientFailureError(
                f"Request timed out after {self.attempt_timeout:g}s", original_exception=e
            ) from e

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "operation") -> T:
        """Run operation, retrying failures according to the policy.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt
            description: Name used in log messages

        Returns:
            The operation's result

        Raises:
            PayloadTooLargeError: Immediately, without retrying
            Exception: The last failure once retries are exhausted
        """
        max_retries = self.policy.max_retries

        for attempt in range(max_retries + 1):
            try:
                return await self._attempt(operation)
            except NON_RETRYABLE_EXCEPTIONS as e:
                logger.error(f"{description} failed with non-retryable error: {e}")
                raise
            except Exception as e:
                if attempt >= max_retries:
                    logger.error(f"{description} failed after {max_retries} retries: {e}")
                    raise

                delay = self.backoff_delay(e, attempt)
                kind = "Rate limit hit" if isinstance(e, RateLimitedError) else "Attempt failed"
                logger.warning(
                    f"{description} attempt {attempt + 1}/{max_retries} failed: {e}. "
                    f"{kind}, retrying in {delay:.2f}s..."
                )

            await self._sleep(delay)

        # Should never reach here, but satisfy type checker
        raise RuntimeError("Unexpected retry loop exit")
