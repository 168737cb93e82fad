"""
HTTP handlers for ``POST /match`` and ``POST /analyze``.

Handlers are transport-agnostic: they take the Authorization header and the
decoded JSON body and return an ApiResponse. ``stray_match.api.wsgi`` maps
them onto WSGI.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from stray_match.core.cache import TTLCache
from stray_match.core.describe import AnimalDescriber
from stray_match.core.errors import AuthError, MalformedRequest, RateLimitExceeded
from stray_match.core.orchestrator import AuthenticatedUser, MatchingOrchestrator, MatchRequest
from stray_match.core.rate_limiter import RateLimiter, RateLimitResult
from stray_match.logging_config import get_logger
from stray_match.storage.models import Tier
from stray_match.storage.profiles import ProfileRepository

logger = get_logger(__name__)

UPGRADE_MESSAGE = "Upgrade to Supporter for higher limits!"


@dataclass
class ApiResponse:
    status: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)


def bearer_token(authorization: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthError: If the header is missing or not a bearer credential
    """
    if not authorization:
        raise AuthError("Missing Authorization header")
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Authorization header must be 'Bearer <token>'")
    return token.strip()


class ApiService:
    """Authentication, tier lookup and response shaping for both routes."""

    def __init__(
        self,
        profiles: ProfileRepository,
        rate_limiter: RateLimiter,
        orchestrator: MatchingOrchestrator,
        describer: AnimalDescriber,
        tier_cache: Optional[TTLCache] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.profiles = profiles
        self.rate_limiter = rate_limiter
        self.orchestrator = orchestrator
        self.describer = describer
        self.tier_cache = tier_cache if tier_cache is not None else TTLCache()
        self._clock = clock

    def authenticate(self, authorization: Optional[str]) -> AuthenticatedUser:
        """Resolve the caller and their tier.

        Raises:
            AuthError: On a missing, unknown or expired token
        """
        user_id = self.profiles.resolve_token(bearer_token(authorization))
        if not user_id:
            raise AuthError("Invalid or expired token")
        return AuthenticatedUser(user_id=user_id, tier=self.tier_for(user_id))

    def tier_for(self, user_id: str) -> Tier:
        key = f"tier:{user_id}"
        cached = self.tier_cache.get(key)
        if cached is not None:
            return cached
        profile = self.profiles.get_profile(user_id)
        tier = profile.tier if profile else Tier.FREE
        self.tier_cache.set(key, tier)
        return tier

    def handle_match(self, authorization: Optional[str], payload: Any) -> ApiResponse:
        """``POST /match``: run the matching pipeline for one record."""
        try:
            user = self.authenticate(authorization)
            request = MatchRequest.from_payload(payload)
            self.orchestrator.run(request, user)
        except AuthError as e:
            logger.info(f"Rejected /match: {e}")
            return ApiResponse(401, {"error": "Unauthorized"})
        except MalformedRequest as e:
            logger.warning(f"Malformed /match request: {e}")
            return ApiResponse(500, {"error": str(e)})
        except RateLimitExceeded as e:
            return self._rate_limited(e.result)
        except Exception as e:
            logger.exception(f"/match failed: {e}")
            return ApiResponse(500, {"error": "Internal server error", "message": str(e)})
        return ApiResponse(200, {"success": True})

    def handle_analyze(self, authorization: Optional[str], payload: Any) -> ApiResponse:
        """``POST /analyze``: describe one animal photo."""
        try:
            user = self.authenticate(authorization)
        except AuthError as e:
            logger.info(f"Rejected /analyze: {e}")
            return ApiResponse(401, {"error": "Unauthorized"})

        try:
            rate_limit = self.rate_limiter.check_and_consume(user.user_id, user.tier)
        except Exception as e:
            logger.exception(f"Rate limit check failed for {user.user_id}: {e}")
            return ApiResponse(500, {"error": "Internal server error", "message": str(e)})
        if not rate_limit.allowed:
            return self._rate_limited(rate_limit)

        body = payload if isinstance(payload, Mapping) else {}
        image = body.get("image")
        if not isinstance(image, str) or not image.strip():
            return ApiResponse(400, {"error": "Image URL required"})
        prompt = body.get("prompt") if isinstance(body.get("prompt"), str) else None

        try:
            analysis, usage, cost = self.describer.describe(image, user.user_id, prompt=prompt)
        except Exception as e:
            logger.error(f"Image analysis failed for {user.user_id}: {e}")
            return ApiResponse(500, {"error": "AI analysis failed", "details": str(e)})

        remaining = max(0, rate_limit.remaining - 1)
        return ApiResponse(
            200,
            {
                "success": True,
                "analysis": analysis,
                "usage": {
                    "tokensUsed": usage.total_tokens,
                    "cost": cost,
                    "remaining": remaining,
                    "tier": user.tier.value,
                },
            },
            headers={"X-RateLimit-Remaining": str(remaining)},
        )

    def _rate_limited(self, result: RateLimitResult) -> ApiResponse:
        retry_after = max(0, math.ceil((result.reset_at - self._clock()).total_seconds()))
        return ApiResponse(
            429,
            {
                "error": "Rate limit exceeded",
                "message": (
                    f"You've reached your {result.tier.value} tier limit. "
                    f"Try again after {result.reset_at.strftime('%H:%M:%S')}."
                ),
                "resetAt": result.reset_at.isoformat(),
                "tier": result.tier.value,
                "upgradeMessage": UPGRADE_MESSAGE if result.tier == Tier.FREE else None,
            },
            headers={
                "X-RateLimit-Limit": str(result.limit),
                "X-RateLimit-Remaining": str(result.remaining),
                "X-RateLimit-Reset": result.reset_at.isoformat(),
                "Retry-After": str(retry_after),
            },
        )
