"""
"Animals near you" alerts.

One alert per area: once a user has been told about sightings around a
location, the area is remembered for 24 hours and further checks inside it
are skipped. Moving more than 5 km away from every remembered area starts
over, and forgets which sightings were announced. Within one stretch of
areas a sighting is never announced twice.
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Set

from stray_match.core.cache import NotifiedAreaCache
from stray_match.core.errors import NotificationFailure
from stray_match.core.geo import Coordinates
from stray_match.logging_config import get_logger
from stray_match.storage.animals import AnimalRepository, SearchTarget
from stray_match.storage.models import AnimalRecord, AnimalType

from .push import PushMessage

logger = get_logger(__name__)


def time_ago(then: datetime, now: datetime) -> str:
    """Human-readable age of a sighting."""
    minutes = int((now - then).total_seconds() // 60)
    if minutes < 60:
        return "just now" if minutes <= 1 else f"{minutes} minutes ago"
    hours = minutes // 60
    if hours < 24:
        return "1 hour ago" if hours == 1 else f"{hours} hours ago"
    days = hours // 24
    return "yesterday" if days == 1 else f"{days} days ago"


class NearbySightingAlerts:
    """Tells one device about recent sightings around it."""

    def __init__(
        self,
        animals: AnimalRepository,
        relay,
        push_token: str,
        areas: Optional[NotifiedAreaCache] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.animals = animals
        self.relay = relay
        self.push_token = push_token
        self.areas = areas or NotifiedAreaCache()
        self.announced: Set[str] = set()
        self._clock = clock

    def check(self, location: Coordinates, radius_km: float = 5.0, hours: int = 24) -> List[AnimalRecord]:
        """Look for new sightings and send at most one alert.

        Returns:
            The sightings announced by this call (empty when skipped)
        """
        if self.areas.reset_if_far(location):
            self.announced.clear()
        if self.areas.was_notified(location, radius_km):
            logger.debug("Area already notified recently, skipping")
            return []

        now = self._clock()
        since = now - timedelta(hours=hours)
        nearby: List[AnimalRecord] = []
        for animal_type in AnimalType:
            nearby.extend(self.animals.find_nearby(SearchTarget.SIGHTINGS, location, radius_km, animal_type, since=since))

        fresh = [record for record in nearby if record.id not in self.announced]
        if not fresh:
            logger.debug("No new sightings nearby")
            return []

        logger.info(f"Found {len(fresh)} new sightings within {radius_km:g}km")
        self.areas.mark(location, radius_km)
        self.announced.update(record.id for record in fresh)
        self._send(fresh, now)
        return fresh

    def _send(self, fresh: List[AnimalRecord], now: datetime) -> None:
        if len(fresh) == 1:
            record = fresh[0]
            title = "Stray animal nearby"
            body = (
                f"A {record.animal_type.value} was spotted {time_ago(record.spotted_at, now)} "
                "near your location. Tap to view details."
            )
        else:
            title = "Stray animals nearby"
            body = f"{len(fresh)} animals were spotted near your location. Tap to view details."

        message = PushMessage(
            to=self.push_token,
            title=title,
            body=body,
            data={"type": "nearby_sightings", "sightingIds": [record.id for record in fresh]},
        )
        try:
            self.relay.send(message)
        except NotificationFailure as e:
            logger.warning(f"Nearby alert failed: {e}")
