# FILE: services/retry.py
"""
Bounded retry with a fixed delay between attempts.

Only the exception types listed in the policy are retried; anything else
(validation errors, rejected requests) propagates on the first attempt.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Tuple, Type

from core.errors import ClassifierUnavailable

logger = logging.getLogger("retry")


@dataclass(frozen=True)
class RetryPolicy:
    retries: int = 2
    delay: float = 1.0
    retry_on: Tuple[Type[BaseException], ...] = field(default=(ClassifierUnavailable,))

    @property
    def max_attempts(self) -> int:
        return self.retries + 1


async def call_with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> Any:
    """
    Await fn(*args, **kwargs), retrying retryable failures up to
    policy.retries times. The last retryable error is re-raised.
    """
    attempt = 1
    while True:
        try:
            return await fn(*args, **kwargs)
        except policy.retry_on as exc:
            if attempt >= policy.max_attempts:
                logger.error(f"[RETRY] giving up after {attempt} attempts: {exc}")
                raise
            logger.warning(
                f"[RETRY] attempt {attempt}/{policy.max_attempts} failed: {exc}; "
                f"retrying in {policy.delay}s"
            )
            attempt += 1
            await sleep(policy.delay)
