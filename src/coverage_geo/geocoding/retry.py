"""
Rate-limited retry executor for outbound geocoding calls.

Wraps a single provider operation with per-provider pacing and bounded
exponential backoff. Failures never escape: an exhausted or permanently
failed operation yields None and the caller skips the item.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from ..utils.errors import ProviderError
from .base import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

BACKOFF_BASE_MS = 1000
BACKOFF_CAP_MS = 10000
DEFAULT_MAX_RETRIES = 3


def backoff_ms(attempt: int) -> int:
    """Backoff before retrying after failed attempt number `attempt` (0-based)."""
    return min(BACKOFF_BASE_MS * (2 ** attempt), BACKOFF_CAP_MS)


class RetryExecutor:
    """
    Runs provider operations with pacing and retry.

    Per call:
    - acquire a pacing slot, then issue the operation
    - rate limited / transient failure: back off and retry while
      attempts remain
    - permanent failure: give up immediately
    - exhausted: return None
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize executor.

        Args:
            max_retries: Default number of attempts per operation
            sleep: Sleep function used for backoff (injectable for tests)
        """
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.max_retries = max_retries
        self._sleep = sleep
        self.calls_issued = 0

    def execute(
        self,
        operation: Callable[[], T],
        pacer: RateLimiter,
        max_retries: Optional[int] = None,
        label: str = "",
    ) -> Optional[T]:
        """
        Run `operation` until it succeeds or attempts run out.

        Args:
            operation: Zero-argument callable issuing one outbound request
            pacer: Rate limiter of the provider being called
            max_retries: Override of the default attempt budget
            label: Short description used in log messages

        Returns:
            The operation's result, or None when it could not be obtained
        """
        budget = self.max_retries if max_retries is None else max_retries
        attempt = 0

        while True:
            pacer.acquire()
            self.calls_issued += 1
            try:
                return operation()
            except ProviderError as e:
                error = e
            finally:
                pacer.release()

            if not error.retryable:
                logger.warning(f"Giving up on {label or 'request'}: {error}")
                return None
            delay_ms = backoff_ms(attempt)
            attempt += 1
            if attempt >= budget:
                logger.warning(
                    f"Giving up on {label or 'request'} after {attempt} attempt(s): {error}"
                )
                return None
            logger.info(
                f"Attempt {attempt}/{budget} failed for {label or 'request'}: {error}. "
                f"Retrying in {delay_ms}ms"
            )
            self._sleep(delay_ms / 1000.0)
