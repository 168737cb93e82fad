"""
Request deadlines.

One Deadline is created per orchestrator run and handed to every I/O call,
which derives its own timeout from what is left.
"""

import time
from typing import Callable, Optional

from .errors import DeadlineExceeded


class Deadline:
    """A point in time after which no new I/O should start."""

    def __init__(self, seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            seconds: Budget from now; None means unbounded
            clock: Monotonic clock, injectable for tests
        """
        if seconds is not None and seconds < 0:
            raise ValueError("seconds cannot be negative")
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left, floored at 0. None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def timeout(self, cap: float) -> float:
        """Timeout for the next call: the smaller of ``cap`` and what is left.

        Raises:
            DeadlineExceeded: If the deadline has already passed
        """
        remaining = self.remaining()
        if remaining is None:
            return cap
        if remaining <= 0:
            raise DeadlineExceeded("deadline passed")
        return min(cap, remaining)
