"""
Data models for storage layer.

Defines database entities and data structures.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class AnimalType(Enum):
    """Species supported by the reporting flow."""
    CAT = "cat"
    DOG = "dog"


class Tier(Enum):
    """User classification that selects rate-limit quotas."""
    FREE = "free"
    SUPPORTER = "supporter"
    ADMIN = "admin"


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one vision-model attempt.

    Append-only events used for rate-limit window counting and cost
    observability. Once written, these records must never be modified.
    """
    timestamp: datetime
    user_id: str
    feature: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost: float
    success: bool
    request_id: Optional[str] = None


@dataclass(frozen=True)
class AnimalRecord:
    """A reported sighting of a stray animal."""
    id: str
    animal_type: AnimalType
    location: Optional[str]
    photo_ref: str
    spotted_at: datetime
    status: str = "spotted"
    user_id: Optional[str] = None
    color: Optional[str] = None
    breed: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class LostAnimalRecord:
    """A lost-animal report filed by its owner."""
    id: str
    owner_id: str
    name: str
    animal_type: AnimalType
    location: Optional[str]
    photo_ref: str
    created_at: datetime
    status: str = "active"
    color: Optional[str] = None
    breed: Optional[str] = None
    description: Optional[str] = None
    distinctive_features: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MatchCandidate:
    """Transient (lost report, sighting) pairing. Never persisted."""
    lost_animal_id: str
    sighting_id: str


@dataclass(frozen=True)
class MatchResult:
    """Persisted high-confidence match, unique per pair."""
    lost_animal_id: str
    sighting_id: str
    confidence: float
    reason: str
    created_at: Optional[datetime] = None
    viewed: bool = False
    dismissed: bool = False


@dataclass(frozen=True)
class Profile:
    """Account data the pipeline needs: push destination and tier flags."""
    id: str
    push_token: Optional[str] = None
    is_supporter: bool = False
    is_admin: bool = False

    @property
    def tier(self) -> Tier:
        if self.is_admin:
            return Tier.ADMIN
        if self.is_supporter:
            return Tier.SUPPORTER
        return Tier.FREE
