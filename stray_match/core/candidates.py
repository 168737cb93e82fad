"""
Candidate search.

Lost reports are never filtered by distance: a sighting is compared with
every active lost report of its type, newest first.

Sightings use a spatial query around the origin. Fallback, in order:
1. spatial query errors or finds nothing -> unfiltered scan
2. origin coordinates cannot be decoded -> straight to the unfiltered scan

Returning too many candidates is cheap (the pre-filter rejects them);
silently returning none because the spatial path is degraded is not.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterator, List, Optional

from stray_match.logging_config import get_logger
from stray_match.storage.animals import AnimalRepository, AnyRecord, SearchTarget
from stray_match.storage.models import AnimalType

from .errors import CandidateSearchDegraded
from .geo import Coordinates, CoordinateDecodeError, parse_point

logger = get_logger(__name__)

DEFAULT_RADIUS_KM = 50.0
DEFAULT_LOOKBACK_DAYS = 30
DEFAULT_SCAN_LIMIT = 50


class SearchPath(Enum):
    """Which query produced a candidate set."""
    SPATIAL = "spatial"
    SCAN = "scan"
    ALL_ACTIVE = "all_active"


@dataclass(frozen=True)
class CandidateSet:
    """Records found for one search, plus how they were found."""
    records: List[AnyRecord] = field(default_factory=list)
    path: SearchPath = SearchPath.SPATIAL
    degraded_reason: Optional[str] = None

    def __iter__(self) -> Iterator[AnyRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


class CandidateSearch:
    """Finds sightings for a lost report, or lost reports for a sighting."""

    def __init__(
        self,
        repository: AnimalRepository,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
        max_results: int = DEFAULT_SCAN_LIMIT,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.repository = repository
        self.scan_limit = scan_limit
        self.max_results = max_results
        self._clock = clock

    def find_candidates(
        self,
        origin_location: Optional[str],
        animal_type: AnimalType,
        target: SearchTarget,
        radius_km: float = DEFAULT_RADIUS_KM,
        lookback_days: Optional[int] = DEFAULT_LOOKBACK_DAYS
    ) -> CandidateSet:
        """Search candidates of ``animal_type`` around ``origin_location``.

        Args:
            origin_location: WKT point of the triggering record
            animal_type: Always applied, before any spatial filter
            target: Which table to search
            radius_km: Spatial radius (ignored by the scan and for lost reports)
            lookback_days: Time window; None disables it

        Returns:
            CandidateSet; falls back to the scan rather than returning an
            empty set because of a spatial failure
        """
        since = self._clock() - timedelta(days=lookback_days) if lookback_days else None

        if target == SearchTarget.LOST_REPORTS:
            records = self.repository.scan(target, animal_type, since=since, limit=self.max_results)
            logger.info(f"Found {len(records)} active {animal_type.value} lost reports")
            return CandidateSet(records=records, path=SearchPath.ALL_ACTIVE)

        try:
            origin = parse_point(origin_location)
        except CoordinateDecodeError as e:
            return self._scan(target, animal_type, since, f"origin coordinates unavailable: {e}")

        try:
            records = self._spatial(target, origin, radius_km, animal_type, since)
        except CandidateSearchDegraded as e:
            return self._scan(target, animal_type, since, str(e))

        if not records:
            return self._scan(
                target, animal_type, since,
                f"no {animal_type.value} {target.value} within {radius_km:g}km",
            )

        logger.info(f"Spatial search found {len(records)} {target.value} within {radius_km:g}km")
        return CandidateSet(records=records, path=SearchPath.SPATIAL)

    def _spatial(
        self,
        target: SearchTarget,
        origin: Coordinates,
        radius_km: float,
        animal_type: AnimalType,
        since: Optional[datetime]
    ) -> List[AnyRecord]:
        try:
            return self.repository.find_nearby(
                target, origin, radius_km, animal_type, since=since, limit=self.max_results
            )
        except Exception as e:
            raise CandidateSearchDegraded(f"spatial query failed: {e}") from e

    def _scan(
        self,
        target: SearchTarget,
        animal_type: AnimalType,
        since: Optional[datetime],
        reason: str
    ) -> CandidateSet:
        logger.warning(f"Candidate search degraded ({reason}); scanning without location filter")
        records = self.repository.scan(target, animal_type, since=since, limit=self.scan_limit)
        logger.info(f"Scan found {len(records)} {target.value}")
        return CandidateSet(records=records, path=SearchPath.SCAN, degraded_reason=reason)
