"""Backoff policies for BLE connection retries."""

import random

from embermug.interfaces.ble import utils
from embermug.interfaces.ble.constants import BLEConfig


class ReconnectPolicy:
    """
    Exponential backoff between connection attempts, optionally jittered.

    Attempt numbers are zero-based: the delay after the first failure is
    `get_delay(0) == initial_delay`. How many attempts are made is up to the
    caller.
    """

    def __init__(
        self,
        *,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff: float = 2.0,
        jitter_ratio: float = 0.1,
        random_source=None,
    ):
        if initial_delay <= 0:
            raise ValueError(f"initial_delay must be > 0, got {initial_delay}")
        if max_delay < initial_delay:
            raise ValueError(
                f"max_delay ({max_delay}) must be >= initial_delay ({initial_delay})"
            )
        if backoff <= 1.0:
            raise ValueError(f"backoff must be > 1.0, got {backoff}")
        if not 0.0 <= jitter_ratio <= 1.0:
            raise ValueError(
                f"jitter_ratio must be between 0.0 and 1.0, got {jitter_ratio}"
            )
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff = backoff
        self.jitter_ratio = jitter_ratio
        self._random = random_source or random

    def get_delay(self, attempt: int) -> float:
        delay = min(self.initial_delay * (self.backoff**attempt), self.max_delay)
        if not self.jitter_ratio:
            return delay
        jitter = delay * self.jitter_ratio * (self._random.random() * 2.0 - 1.0)
        return max(0.001, delay + jitter)

    async def sleep_with_backoff(self, attempt: int) -> float:
        """Sleep for the delay after failed attempt number `attempt` and return it."""
        delay = self.get_delay(attempt)
        await utils._sleep(delay)
        return delay


class RetryPolicy:
    """Retry presets for BLE operations."""

    # 1s, 2s, 4s ... between connection attempts
    CONNECT = ReconnectPolicy(
        initial_delay=BLEConfig.CONNECT_RETRY_INITIAL_DELAY,
        max_delay=BLEConfig.CONNECT_RETRY_MAX_DELAY,
        backoff=BLEConfig.CONNECT_RETRY_BACKOFF,
        jitter_ratio=0.0,
    )
