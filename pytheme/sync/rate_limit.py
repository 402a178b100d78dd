"""Client side throttling against the store's per-store call budget.

Every API response carries a ``current/total`` call counter. Once fewer
than ``LOWER_LIMIT`` calls remain, the next asset call waits until
``RESET_SECONDS`` have passed since the window was first observed, unless
that time has already passed.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

LOWER_LIMIT = 3
RESET_SECONDS = 10
DEFAULT_TOTAL_CALLS = 40


@dataclass
class RateState:
    """Call budget as last reported by the store."""

    current_calls: Optional[int] = None
    total_calls: Optional[int] = None
    window_started_at: Optional[float] = None
    """Clock value of the first response seen in this throttle window"""

    @property
    def remaining(self) -> int:
        total = self.total_calls if self.total_calls is not None else DEFAULT_TOTAL_CALLS
        return total - (self.current_calls or 0)


class RateLimiter:
    """Tracks the call budget and blocks the caller when it runs low."""

    def __init__(
        self,
        state: Optional[RateState] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the limiter.

        Args:
            state: Initial state (a fresh RateState if omitted)
            clock: Monotonic clock in seconds
            sleep: Blocking sleep function
        """
        self.state = state or RateState()
        self._clock = clock
        self._sleep = sleep

    def observe(self, header: Optional[str]) -> None:
        """Record a ``current/total`` call limit header.

        A new window starts when none is open or the open one is older
        than ``RESET_SECONDS``; later headers in a live window leave its
        start alone.
        """
        if not header:
            return
        try:
            current, total = (int(part) for part in header.strip().split("/"))
        except ValueError:
            logger.debug(f"Ignoring malformed call limit header: {header!r}")
            return

        self.state.current_calls = current
        self.state.total_calls = total
        if self.state.window_started_at is None or self.elapsed() > RESET_SECONDS:
            self.state.window_started_at = self._clock()

    def elapsed(self) -> float:
        """Seconds since the current window started (0 without a window)."""
        if self.state.window_started_at is None:
            return 0.0
        return self._clock() - self.state.window_started_at

    def critical_permits(self) -> bool:
        return self.state.remaining < LOWER_LIMIT

    def needs_sleep(self) -> bool:
        if self.state.window_started_at is None:
            return False
        return self.critical_permits() and self.elapsed() <= RESET_SECONDS

    def sleep_seconds(self) -> float:
        if not self.needs_sleep():
            return 0.0
        return max(RESET_SECONDS - self.elapsed(), 0.0)

    def throttle(self) -> float:
        """Block until the budget has refreshed, if needed.

        Returns:
            Seconds slept (0 when no wait was necessary)
        """
        if not self.needs_sleep():
            return 0.0
        seconds = self.sleep_seconds()
        logger.debug(
            f"Throttling for {seconds:.1f}s, {self.state.remaining} call(s) left"
        )
        self._sleep(seconds)
        self.state.window_started_at = None
        return seconds

    def usage(self) -> str:
        current = self.state.current_calls
        total = self.state.total_calls
        return (
            f"[API Limit: {current if current is not None else '??'}/"
            f"{total if total is not None else '??'}]"
        )
