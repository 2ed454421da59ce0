"""Retry and backoff policy for failed job attempts.

A failed attempt puts its job back in the queue with a delayed
``next_run_at``. The delay is computed here so the Job Store only has to
persist it:

    fixed:  base_seconds
    exp:    min(base_seconds * 2^(attempts - 1), max_seconds)

Jobs may override the global policy per step through the ``retry`` key of
their payload (``{"backoff": "exp", "base_ms": 1500}``).
"""

import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any

from orchestrator.config import Settings
from orchestrator.core.logging import get_logger

logger = get_logger(__name__)

BACKOFF_FIXED = "fixed"
BACKOFF_EXPONENTIAL = "exp"


@dataclass(frozen=True)
class BackoffPolicy:
    """Configuration for retry delays and retryability."""

    backoff: str = BACKOFF_EXPONENTIAL
    base_seconds: float = 30.0
    max_seconds: float = 3600.0
    jitter: bool = False
    non_retryable_status_codes: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackoffPolicy":
        return cls(
            backoff=settings.retry_backoff,
            base_seconds=settings.retry_base_seconds,
            max_seconds=settings.retry_max_seconds,
            non_retryable_status_codes=frozenset(settings.non_retryable_status_codes),
        )

    def with_overrides(self, retry: dict[str, Any] | None) -> "BackoffPolicy":
        """Apply a job payload's ``retry`` block on top of this policy."""
        if not isinstance(retry, dict):
            return self

        policy = self
        backoff = retry.get("backoff")
        if backoff in (BACKOFF_FIXED, BACKOFF_EXPONENTIAL):
            policy = replace(policy, backoff=backoff)
        elif backoff is not None:
            logger.bind(backoff=backoff).warning("unknown_backoff_override_ignored")

        base_ms = retry.get("base_ms")
        if isinstance(base_ms, int | float) and base_ms > 0:
            policy = replace(policy, base_seconds=base_ms / 1000)
        return policy

    def delay_seconds(self, attempts: int) -> float:
        """Delay before the next try, given the number of failed attempts so far."""
        if self.backoff == BACKOFF_FIXED:
            delay = self.base_seconds
        else:
            exponent = max(attempts - 1, 0)
            delay = self.base_seconds * (2**exponent)
        delay = min(delay, self.max_seconds)

        if self.jitter:
            delay *= 0.5 + random.random()
        return delay

    def next_run_at(self, now: datetime, attempts: int) -> datetime:
        return now + timedelta(seconds=self.delay_seconds(attempts))

    def is_retryable(self, status_code: int | None) -> bool:
        """Whether a failed attempt with this status may be tried again.

        With the default empty set every failure is retried until
        ``max_attempts`` is reached.
        """
        return status_code not in self.non_retryable_status_codes
