"""Global request rate limit shared by every import worker."""

from __future__ import annotations

import logging

from ratelimit import limits, sleep_and_retry

logger = logging.getLogger("user_import.rate_limiter")


class RateLimiter:
    """Blocking gate admitting at most ``calls`` callers per ``period`` seconds.

    Admissions are spread evenly (one every ``period / calls`` seconds)
    rather than released in bursts at window boundaries, so the ceiling holds
    over any rolling window. The limit is global: adding threads only adds
    waiters.
    """

    def __init__(self, calls: int, period: float = 1.0) -> None:
        if calls < 1:
            raise ValueError("calls must be at least 1")
        if period <= 0:
            raise ValueError("period must be positive")
        self.calls = calls
        self.period = period
        self.interval = period / calls
        self._gate = sleep_and_retry(limits(calls=1, period=self.interval)(self._admit))

    @staticmethod
    def _admit() -> None:
        return None

    def acquire(self) -> None:
        """Block until this caller may issue a request."""
        self._gate()
