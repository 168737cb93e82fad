"""
Bounded in-memory stores with an injected clock.

TTLCache evicts by age (and by size once full). NotifiedAreaCache remembers
where a user was last alerted, forgets entries after 24 hours and resets
completely once the user is far from every remembered area.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from .geo import Coordinates, haversine_km

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 5 * 60
NOTIFIED_AREA_TTL_SECONDS = 24 * 60 * 60
NOTIFIED_AREA_RESET_KM = 5.0


@dataclass(frozen=True)
class _Entry(Generic[V]):
    value: V
    stored_at: float
    expires_at: float


class TTLCache(Generic[V]):
    """Key/value store with per-entry TTL and a size cap (oldest evicted)."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic
    ):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be > 0")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, _Entry[V]]" = OrderedDict()

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: V, ttl: Optional[float] = None) -> None:
        now = self._clock()
        self._entries.pop(key, None)
        self._entries[key] = _Entry(value=value, stored_at=now, expires_at=now + (ttl or self.default_ttl))
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def prune(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, int]:
        now = self._clock()
        valid = sum(1 for entry in self._entries.values() if now <= entry.expires_at)
        return {"total": len(self._entries), "valid": valid, "expired": len(self._entries) - valid}

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class NotifiedArea:
    center: Coordinates
    radius_km: float
    notified_at: float


class NotifiedAreaCache:
    """Areas a user has already been alerted about."""

    def __init__(
        self,
        ttl_seconds: float = NOTIFIED_AREA_TTL_SECONDS,
        reset_distance_km: float = NOTIFIED_AREA_RESET_KM,
        max_areas: int = 100,
        clock: Callable[[], float] = time.time
    ):
        self.ttl_seconds = ttl_seconds
        self.reset_distance_km = reset_distance_km
        self.max_areas = max_areas
        self._clock = clock
        self._areas: List[NotifiedArea] = []

    @property
    def areas(self) -> List[NotifiedArea]:
        return list(self._areas)

    def was_notified(self, location: Coordinates, radius_km: float) -> bool:
        """True if ``location`` lies within ``radius_km`` of a live area."""
        self.prune()
        return any(haversine_km(location, area.center) <= radius_km for area in self._areas)

    def mark(self, location: Coordinates, radius_km: float) -> None:
        self._areas.append(NotifiedArea(center=location, radius_km=radius_km, notified_at=self._clock()))
        if len(self._areas) > self.max_areas:
            del self._areas[: len(self._areas) - self.max_areas]

    def prune(self) -> int:
        cutoff = self._clock() - self.ttl_seconds
        before = len(self._areas)
        self._areas = [area for area in self._areas if area.notified_at >= cutoff]
        return before - len(self._areas)

    def reset_if_far(self, location: Coordinates) -> bool:
        """Forget everything once ``location`` is far from every area."""
        if not self._areas:
            return False
        if all(haversine_km(location, area.center) > self.reset_distance_km for area in self._areas):
            self._areas = []
            return True
        return False

