"""Retry policy for platform API calls."""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional


@dataclass
class RetryContext:
    """State of one logical call across its attempts."""

    attempt: int = 0
    last_status: Optional[int] = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def elapsed(self) -> float:
        """Seconds since the first attempt started."""
        return time.monotonic() - self.started_at


class RetryPolicy:
    """Decides whether and how long to wait before retrying a failed attempt."""

    def __init__(
        self,
        max_attempts: int = 3,
        retry_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize retry policy.

        Args:
            max_attempts: Total attempts per call, including the first
            retry_interval: Base delay in seconds, multiplied by the attempt number
            sleep: Sleep function, replaceable in tests
        """
        if max_attempts < 1:
            raise ValueError('max_attempts must be at least 1')
        if retry_interval < 0:
            raise ValueError('retry_interval cannot be negative')

        self.max_attempts = max_attempts
        self.retry_interval = retry_interval
        self._sleep = sleep

    @staticmethod
    def retryable(status: Optional[int]) -> bool:
        """Check whether a status is worth retrying.

        Args:
            status: HTTP status code, or None for a network failure

        Returns:
            True for 5xx responses and network failures
        """
        if status is None:
            return True
        return 500 <= status < 600

    def should_retry(self, context: RetryContext) -> bool:
        """Check whether another attempt is allowed after a failure."""
        return (
            self.retryable(context.last_status)
            and context.attempt < self.max_attempts
        )

    def delay(self, context: RetryContext) -> float:
        """Seconds to wait before the next attempt."""
        return self.retry_interval * context.attempt

    def wait(self, context: RetryContext) -> None:
        """Block the calling thread until the next attempt may start."""
        delay = self.delay(context)
        if delay > 0:
            self._sleep(delay)
