"""Token-bucket rate limiting for upstream RPC requests."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from harvest.errors import Cancelled


class RateLimiter:
    """Token bucket refilled at ``rate`` tokens/sec holding at most ``burst``.

    The bucket starts full. ``acquire`` is safe to call from many worker
    threads at once; each admitted caller takes exactly one token.
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.rate = float(rate)
        self.burst = int(burst)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._tokens = float(burst)
        self._updated = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._updated
        if elapsed > 0:
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
            self._updated = now

    @property
    def available(self) -> float:
        """Tokens currently in the bucket."""
        with self._lock:
            self._refill()
            return self._tokens

    def try_acquire(self) -> bool:
        """Take a token if one is available right now."""
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    def acquire(self, cancel: threading.Event | None = None) -> None:
        """Block until a token is taken or ``cancel`` fires.

        Raises Cancelled when the cancel event is set before a token was
        taken; no token is consumed in that case.
        """
        while True:
            if cancel is not None and cancel.is_set():
                raise Cancelled("rate limiter wait cancelled")

            with self._lock:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                wait_seconds = (1 - self._tokens) / self.rate

            if cancel is None:
                self._sleep(wait_seconds)
            elif cancel.wait(wait_seconds):
                raise Cancelled("rate limiter wait cancelled")
