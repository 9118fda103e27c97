"""Request pacing for backends that throttle clients."""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

FREE_USER_LIMIT = 600
PAID_USER_LIMIT = 1500
WINDOW_SECONDS = 30 * 60.0

# Minimum gap between two requests per pacing level, in seconds
DELAY_MAP = {
    "minimal": 0.1,
    "normal": 0.2,
    "conservative": 0.5,
}


class RequestRateLimiter:
    """Fixed-window request counter with a minimum gap between requests.

    Free accounts may issue 600 requests per 30 minutes, paid accounts 1500.
    When the window is exhausted :meth:`acquire` blocks until it resets.
    """

    def __init__(
        self,
        is_paid_user: bool = False,
        delay_level: str = "normal",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.limit = PAID_USER_LIMIT if is_paid_user else FREE_USER_LIMIT
        level = getattr(delay_level, "value", delay_level)
        self.request_delay = DELAY_MAP.get(level, DELAY_MAP["normal"])
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._count = 0
        self._reset_at = clock() + WINDOW_SECONDS
        self._last_request: Optional[float] = None

    def _check_window(self, now: float) -> None:
        if now >= self._reset_at:
            logger.debug("Request window reset")
            self._count = 0
            self._reset_at = now + WINDOW_SECONDS

    def can_make_request(self) -> bool:
        with self._lock:
            self._check_window(self._clock())
            return self._count < self.limit

    def get_wait_time(self) -> float:
        """Seconds to wait before the next request is allowed."""
        with self._lock:
            now = self._clock()
            self._check_window(now)
            if self._count >= self.limit:
                return max(0.0, self._reset_at - now)
            if self._last_request is None:
                return 0.0
            return max(0.0, self._last_request + self.request_delay - now)

    def acquire(self) -> None:
        """Block until a request may be sent, then count it."""
        wait = self.get_wait_time()
        if wait > 0:
            if wait > self.request_delay:
                logger.warning(
                    f"Request limit of {self.limit} per 30 minutes reached, "
                    f"waiting {wait:.0f}s"
                )
            self._sleep(wait)
        with self._lock:
            now = self._clock()
            self._check_window(now)
            self._count += 1
            self._last_request = now

    def usage(self) -> dict:
        """Current window usage."""
        with self._lock:
            now = self._clock()
            self._check_window(now)
            return {
                "requests": self._count,
                "limit": self.limit,
                "seconds_to_reset": max(0, int(self._reset_at - now)),
            }
