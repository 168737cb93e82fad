"""
Owner notification for newly accepted matches.
"""

from typing import Optional

from stray_match.core.deadline import Deadline
from stray_match.core.errors import DeadlineExceeded, NotificationFailure
from stray_match.logging_config import get_logger
from stray_match.storage.models import AnimalRecord, LostAnimalRecord
from stray_match.storage.profiles import ProfileRepository

from .push import PushMessage

logger = get_logger(__name__)

MATCH_NOTIFICATION_TYPE = "lost_animal_match"


def build_match_message(push_token: str, lost: LostAnimalRecord, sighting: AnimalRecord, confidence: float) -> PushMessage:
    return PushMessage(
        to=push_token,
        title=f"Potential match found ({confidence:.0f}% confidence)",
        body=f"We found a {confidence:.0f}% match for {lost.name}. Tap to view.",
        data={
            "type": MATCH_NOTIFICATION_TYPE,
            "lostAnimalId": lost.id,
            "sightingId": sighting.id,
        },
    )


class NotificationDispatcher:
    """Best-effort push to the owner of a lost report.

    The match is already persisted when this runs, so every failure is
    logged and swallowed.
    """

    def __init__(self, profiles: ProfileRepository, relay):
        self.profiles = profiles
        self.relay = relay

    def notify_owner(
        self,
        lost: LostAnimalRecord,
        sighting: AnimalRecord,
        confidence: float,
        deadline: Optional[Deadline] = None
    ) -> None:
        if not self.relay.available:
            return
        try:
            push_token = self.profiles.get_push_token(lost.owner_id)
            if not push_token:
                logger.debug(f"No push token for user {lost.owner_id}")
                return
            timeout = (deadline or Deadline.unbounded()).timeout(self.relay.timeout)
            self.relay.send(build_match_message(push_token, lost, sighting, confidence), timeout=timeout)
            logger.info(f"Match notification sent to {lost.owner_id} for {lost.id}/{sighting.id}")
        except (NotificationFailure, DeadlineExceeded) as e:
            logger.warning(f"Match notification for {lost.id}/{sighting.id} failed: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error notifying {lost.owner_id}: {e}")
