"""
Per-user, per-tier rate limiting over sliding windows.

Check Order:
1. Per-minute window - stops bursts
2. Per-hour window - bounds sustained use
3. Per-day window - bounds daily spend

The first exhausted window decides the denial. Count queries run under a
fail-closed retry policy: if the ledger cannot be read the request is denied.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from stray_match.config.loader import RateLimitConfig
from stray_match.logging_config import get_logger
from stray_match.storage.models import Tier
from stray_match.storage.repository import UsageRepository

from .errors import RetriesExhausted
from .retry import COUNT_QUERY_POLICY, FailureMode, RetryPolicy, retry_call

logger = get_logger(__name__)

FAIL_CLOSED_RETRY_AFTER = timedelta(seconds=60)


@dataclass(frozen=True)
class RateLimitWindow:
    """Usage within one trailing window. Derived, never stored."""
    name: str
    duration: timedelta
    limit: int
    count: int
    oldest: Optional[datetime] = None

    @property
    def exceeded(self) -> bool:
        return self.count >= self.limit

    def reset_at(self, now: datetime) -> datetime:
        """When the oldest counted event leaves the window."""
        return (self.oldest or now) + self.duration


@dataclass(frozen=True)
class RateLimitResult:
    """Decision returned to the caller."""
    allowed: bool
    remaining: int
    reset_at: datetime
    tier: Tier
    limit: int


class RateLimiter:
    """Sliding-window limiter backed by the usage ledger.

    The check itself never writes; callers record a UsageEvent once the
    protected operation finishes.
    """

    def __init__(
        self,
        repository: UsageRepository,
        config: RateLimitConfig,
        policy: RetryPolicy = COUNT_QUERY_POLICY,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.repository = repository
        self.config = config
        self.policy = policy
        self._clock = clock
        self._sleep = sleep

    def check_and_consume(self, user_id: str, tier: Tier) -> RateLimitResult:
        """Decide whether ``user_id`` may make another analyzer call.

        Args:
            user_id: The caller
            tier: Caller's tier, selects the quotas

        Returns:
            RateLimitResult. When allowed, ``remaining`` is taken from the
            daily window and ``reset_at`` is the soonest window reset.
        """
        quota = self.config.for_tier(tier)
        now = self._clock()
        windows: List[RateLimitWindow] = []

        for name, duration, limit in quota.windows():
            try:
                count, oldest = retry_call(
                    self.policy,
                    self.repository.count_since,
                    user_id,
                    now - duration,
                    sleep=self._sleep,
                )
            except RetriesExhausted as e:
                if e.failure_mode == FailureMode.FAIL_OPEN:
                    logger.warning(f"Usage count unavailable for {user_id}, failing open: {e.last_error}")
                    return RateLimitResult(
                        allowed=True,
                        remaining=quota.per_day,
                        reset_at=now + duration,
                        tier=tier,
                        limit=quota.per_day,
                    )
                logger.error(f"Usage count unavailable for {user_id}, failing closed: {e.last_error}")
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=now + FAIL_CLOSED_RETRY_AFTER,
                    tier=tier,
                    limit=quota.per_day,
                )

            window = RateLimitWindow(name=name, duration=duration, limit=limit, count=count, oldest=oldest)
            if window.exceeded:
                logger.info(f"User {user_id} hit {tier.value} per-{name} limit ({count}/{limit})")
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=window.reset_at(now),
                    tier=tier,
                    limit=quota.per_day,
                )
            windows.append(window)

        daily = windows[-1]
        return RateLimitResult(
            allowed=True,
            remaining=daily.limit - daily.count,
            reset_at=min(window.reset_at(now) for window in windows),
            tier=tier,
            limit=quota.per_day,
        )
