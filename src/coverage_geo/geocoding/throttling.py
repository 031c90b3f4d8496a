"""
Rate pacing for geocoding providers.

One pacer per provider enforces the minimum interval between consecutive
outbound calls. Pacers are thread-safe and can be shared by concurrent
requests through a PacerRegistry.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

from .base import RateLimiter
from .models import PROVIDER_INTERVALS_MS, ProviderConfig, ProviderName

logger = logging.getLogger(__name__)


class IntervalPacer(RateLimiter):
    """
    Fixed-interval gate for a single provider.

    Each acquire() reserves the next free slot under the lock and then
    sleeps outside of it, so no caller holds the lock while waiting.
    release() pushes the next slot to `min_interval_s` after the call
    finished, so a slow response still leaves a full interval before
    the next call.
    """

    def __init__(
        self,
        min_interval_s: float,
        name: str = "",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize pacer.

        Args:
            min_interval_s: Minimum seconds between two calls
            name: Provider name used in log messages
            clock: Monotonic clock (injectable for tests)
            sleep: Sleep function (injectable for tests)
        """
        if min_interval_s < 0:
            raise ValueError("min_interval_s must be >= 0")

        self.min_interval_s = float(min_interval_s)
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._next_slot: Optional[float] = None
        self.lock = threading.Lock()

    def wait(self) -> None:
        """Block until it's safe to make a request."""
        self.acquire(1)

    def acquire(self, count: int = 1) -> None:
        """
        Reserve `count` consecutive slots and wait for the first one.

        Args:
            count: Number of requests to acquire
        """
        if count <= 0:
            raise ValueError("count must be > 0")

        with self.lock:
            now = self._clock()
            slot = now if self._next_slot is None else max(now, self._next_slot)
            self._next_slot = slot + self.min_interval_s * count

        delay = slot - now
        if delay > 0:
            logger.debug(f"Pacing {self.name or 'provider'}: waiting {delay:.3f}s")
            self._sleep(delay)

    def release(self) -> None:
        """Start the interval over from the end of the finished call."""
        with self.lock:
            ended = self._clock() + self.min_interval_s
            if self._next_slot is None or ended > self._next_slot:
                self._next_slot = ended


class NoOpRateLimiter(RateLimiter):
    """
    Rate limiter that does nothing (for testing/development).
    """

    def wait(self) -> None:
        """Do nothing."""
        pass

    def acquire(self, count: int = 1) -> None:
        """Do nothing."""
        pass


class PacerRegistry:
    """
    Lazily creates one IntervalPacer per provider.

    Owned by a service instance; every request routed through that
    service shares the same pacer for a given provider.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock
        self._sleep = sleep
        self._pacers: Dict[ProviderName, IntervalPacer] = {}
        self.lock = threading.Lock()

    def for_provider(self, config: ProviderConfig | ProviderName) -> IntervalPacer:
        """Return the shared pacer for a provider, creating it on first use."""
        if isinstance(config, ProviderConfig):
            name, interval_ms = config.name, config.min_interval_ms
        else:
            name, interval_ms = config, PROVIDER_INTERVALS_MS[config]

        with self.lock:
            pacer = self._pacers.get(name)
            if pacer is None:
                pacer = IntervalPacer(
                    interval_ms / 1000.0,
                    name=name.value,
                    clock=self._clock,
                    sleep=self._sleep,
                )
                self._pacers[name] = pacer
                logger.debug(f"Created pacer for {name.value}: {interval_ms}ms")
            return pacer
