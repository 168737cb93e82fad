"""
Error taxonomy for the matching pipeline.

Only AuthError, MalformedRequest and RateLimitExceeded reach HTTP callers.
The rest are raised and absorbed inside the pipeline so a single failing
candidate never fails a run.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .rate_limiter import RateLimitResult
    from .retry import FailureMode


class StrayMatchError(Exception):
    """Base class for pipeline errors."""


class AuthError(StrayMatchError):
    """Missing or invalid credentials. Not retried."""


class MalformedRequest(StrayMatchError):
    """Request body does not match the entry-point contract."""


class RateLimitExceeded(StrayMatchError):
    """Caller is over quota; retry after ``result.reset_at``."""

    def __init__(self, result: "RateLimitResult"):
        super().__init__(f"Rate limit exceeded for {result.tier.value} tier until {result.reset_at.isoformat()}")
        self.result = result


class CandidateSearchDegraded(StrayMatchError):
    """Spatial search unavailable; triggers the scan fallback."""


class AnalyzerUnavailable(StrayMatchError):
    """Vision model errored or returned an unparsable answer."""


class PersistenceConflict(StrayMatchError):
    """A match for this pair is already stored."""

    def __init__(self, lost_animal_id: str, sighting_id: str):
        super().__init__(f"Match {lost_animal_id}/{sighting_id} already exists")
        self.lost_animal_id = lost_animal_id
        self.sighting_id = sighting_id


class NotificationFailure(StrayMatchError):
    """Push dispatch failed. Logged only."""


class RetriesExhausted(StrayMatchError):
    """Every attempt of a retry policy failed."""

    def __init__(self, failure_mode: "FailureMode", attempts: int, last_error: Any):
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.failure_mode = failure_mode
        self.attempts = attempts
        self.last_error = last_error


class DeadlineExceeded(StrayMatchError):
    """The run's deadline passed before an I/O call could start."""
