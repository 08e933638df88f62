"""Backoff helpers for the request dispatcher."""

import random
from dataclasses import dataclass
from typing import Callable, Optional

from ..core.config import RetryPolicy


@dataclass
class RetryStats:
    """Bookkeeping for one request across its attempts.

    Attributes:
        attempts: requests sent, including the successful one
        transient_failures: attempts that failed with a retryable error
        reauthentications: logins forced by a 401/403
        total_delay: seconds spent waiting between attempts
    """
    attempts: int = 0
    transient_failures: int = 0
    reauthentications: int = 0
    total_delay: float = 0.0
    last_error: Optional[BaseException] = None


def is_transient_status(status_code: int) -> bool:
    return 500 <= status_code < 600


def is_auth_status(status_code: int) -> bool:
    return status_code in (401, 403)


def backoff_delay(policy: RetryPolicy, retry_index: int,
                  rng: Callable[[], float] = random.random) -> float:
    """Delay before retry number ``retry_index`` (0-based), in seconds.

    Exponential in the retry index and capped at ``max_delay``. With
    jitter the delay is drawn from the upper half of that range.
    """
    delay = min(policy.base_delay * (policy.multiplier ** retry_index), policy.max_delay)
    if policy.jitter:
        delay = delay / 2 + rng() * delay / 2
    return delay
