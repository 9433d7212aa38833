"""
Reconnect policy shared by the long-lived connection flows.

A policy is a tagged variant: ``Bounded`` gives up after a fixed number of
attempts, ``Unbounded`` keeps retrying until the caller cancels. Both use
the same delay calculation, which degrades to a fixed delay when
``backoff_factor`` is 1.0.
"""

import logging
from dataclasses import dataclass
from typing import Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bounded:
    """Retry at most ``max_attempts`` times (the first attempt included)."""

    max_attempts: int
    delay: float
    max_delay: float = 60.0
    backoff_factor: float = 1.0


@dataclass(frozen=True)
class Unbounded:
    """Retry until cancelled."""

    delay: float
    max_delay: float = 60.0
    backoff_factor: float = 1.0


ReconnectPolicy = Union[Bounded, Unbounded]


class RetryUtils:
    """Shared retry utility functions."""

    @staticmethod
    def calculate_backoff_delay(
        attempt: int,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        backoff_factor: float = 2.0
    ) -> float:
        """
        Calculate delay for exponential backoff.

        Args:
            attempt (int): Current attempt number (0-based)
            base_delay (float): Initial delay
            max_delay (float): Maximum delay
            backoff_factor (float): Factor to multiply delay by

        Returns:
            float: Delay in seconds
        """
        delay = base_delay * (backoff_factor ** attempt)
        return min(delay, max_delay)

    @staticmethod
    def delay_after(policy: ReconnectPolicy, attempt: int) -> float:
        """
        Delay to wait after the given failed attempt.

        Args:
            policy: Reconnect policy in force
            attempt (int): Number of the attempt that just failed (1-based)

        Returns:
            float: Delay in seconds before the next attempt
        """
        return RetryUtils.calculate_backoff_delay(
            max(attempt - 1, 0),
            base_delay=policy.delay,
            max_delay=policy.max_delay,
            backoff_factor=policy.backoff_factor,
        )

    @staticmethod
    def can_retry(policy: ReconnectPolicy, attempt: int) -> bool:
        """Whether another attempt is allowed after ``attempt`` failed."""
        if isinstance(policy, Unbounded):
            return True
        return attempt < policy.max_attempts

    @staticmethod
    def describe(policy: ReconnectPolicy) -> str:
        """Short human-readable description used in log lines."""
        if isinstance(policy, Unbounded):
            return f"unbounded, delay={policy.delay:.1f}s"
        return f"max_attempts={policy.max_attempts}, delay={policy.delay:.1f}s"
