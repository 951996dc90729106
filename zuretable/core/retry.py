"""
Retry Policies

Policies consulted by the execution engine after a failed attempt. A policy
only decides whether and when to retry; the engine decides which failures
are eligible at all.
"""

import random
from typing import Optional, Protocol


class RetryConfig:
    """Retry defaults."""

    MAX_ATTEMPTS = 3
    INITIAL_BACKOFF = 3.0  # seconds
    MAX_BACKOFF = 90.0  # seconds
    BACKOFF_MULTIPLIER = 2.0  # exponential backoff


class RetryPolicy(Protocol):
    """Interface consumed by ExecutionEngine."""

    def should_retry(
        self,
        attempt: int,
        status_code: Optional[int],
        error: Exception
    ) -> Optional[float]:
        """
        Decide whether to try again.

        Args:
            attempt: Number of attempts already made (1-based)
            status_code: Status of the failed attempt, None if no response
            error: The failure raised by the attempt

        Returns:
            Delay in seconds before the next attempt, or None to give up
        """
        ...


def is_retryable_status(status_code: Optional[int]) -> bool:
    """
    Status codes a policy may retry.

    Client errors are permanent except for request timeouts; 501 and 505
    mean the service will never accept the request.
    """
    if status_code is None:
        return True
    if 400 <= status_code < 500 and status_code != 408:
        return False
    if status_code in (501, 505):
        return False
    return True


class NoRetry:
    """Never retries."""

    def should_retry(self, attempt: int, status_code: Optional[int], error: Exception) -> Optional[float]:
        return None


class LinearRetry:
    """Retries with a constant delay between attempts."""

    def __init__(self, backoff: float = RetryConfig.INITIAL_BACKOFF, max_attempts: int = RetryConfig.MAX_ATTEMPTS):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.backoff = backoff
        self.max_attempts = max_attempts

    def should_retry(self, attempt: int, status_code: Optional[int], error: Exception) -> Optional[float]:
        if attempt >= self.max_attempts or not is_retryable_status(status_code):
            return None
        return self.backoff


class ExponentialRetry:
    """
    Retries with exponential backoff and jitter.

    delay = min(initial * multiplier ** (attempt - 1), max_backoff) scaled by
    a random factor in [1 - jitter, 1 + jitter].
    """

    def __init__(
        self,
        initial_backoff: float = RetryConfig.INITIAL_BACKOFF,
        max_backoff: float = RetryConfig.MAX_BACKOFF,
        backoff_multiplier: float = RetryConfig.BACKOFF_MULTIPLIER,
        max_attempts: int = RetryConfig.MAX_ATTEMPTS,
        jitter: float = 0.2,
        seed: Optional[int] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not 0.0 <= jitter < 1.0:
            raise ValueError("jitter must be between 0.0 and 1.0")
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.backoff_multiplier = backoff_multiplier
        self.max_attempts = max_attempts
        self.jitter = jitter
        self._random = random.Random(seed)  # Separate instance for determinism

    def should_retry(self, attempt: int, status_code: Optional[int], error: Exception) -> Optional[float]:
        if attempt >= self.max_attempts or not is_retryable_status(status_code):
            return None
        delay = min(self.initial_backoff * (self.backoff_multiplier ** (attempt - 1)), self.max_backoff)
        if self.jitter:
            delay *= self._random.uniform(1.0 - self.jitter, 1.0 + self.jitter)
        return delay
