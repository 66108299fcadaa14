"""
Retry with exponential backoff for gateway calls.

The default is a single attempt: a module post is one synchronous request. Retries
are opt-in for gateways that are still starting up.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry with exponential backoff."""
    max_attempts: int = 1
    base_delay_s: float = 0.5
    max_delay_s: float = 10.0
    backoff_factor: float = 2.0
    retry_on: Tuple[Type[BaseException], ...] = (ConnectionError,)

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay_s * (self.backoff_factor ** (attempt - 1)), self.max_delay_s)


def resilient_call(
    func: Callable[..., T],
    *args: Any,
    retry_config: Optional[RetryConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """
    Call func, retrying only on retry_config.retry_on exceptions.
    Raises the last exception once attempts are exhausted.
    """
    cfg = retry_config or RetryConfig()
    attempts = max(1, cfg.max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return func(*args, **kwargs)
        except cfg.retry_on as exc:
            if attempt >= attempts:
                raise
            delay = cfg.delay_for(attempt)
            logger.warning(
                "Attempt %d/%d failed: %s: %s; retrying in %.1fs",
                attempt, attempts, type(exc).__name__, exc, delay,
            )
            sleep(delay)
    raise AssertionError("unreachable")
