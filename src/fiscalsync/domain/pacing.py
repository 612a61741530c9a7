"""Fixed-interval pacing for calls to the rate-limited source."""

import logging
import threading
import time

from pyrate_limiter import Duration, Limiter, Rate

logger = logging.getLogger(__name__)

# Block for as long as it takes rather than giving up on a slot
BLOCKING_MAX_DELAY_MS = int(Duration.DAY)


class Pacer:
    """At most one call per interval for each key.

    Keys are independent, so runs for different subscribers never wait on
    each other. The first call for a key passes immediately.
    """

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self._limiters: dict[str, Limiter] = {}
        self._lock = threading.Lock()

    def _limiter(self, key: str) -> Limiter:
        with self._lock:
            limiter = self._limiters.get(key)
            if limiter is None:
                rate = Rate(1, max(int(self.interval * Duration.SECOND), 1))
                limiter = Limiter(
                    rate,
                    raise_when_fail=False,
                    max_delay=BLOCKING_MAX_DELAY_MS,
                    retry_until_max_delay=True,
                )
                self._limiters[key] = limiter
            return limiter

    def wait(self, key: str) -> float:
        """Block until the next call for `key` is allowed. Returns seconds waited."""
        if self.interval <= 0:
            return 0.0

        started = time.monotonic()
        if not self._limiter(key).try_acquire(key):
            logger.warning(f"Pacing slot for {key} not acquired, continuing")
        waited = time.monotonic() - started
        if waited >= 0.1:
            logger.debug(f"Paced {key} for {waited:.1f}s")
        return waited
