"""
Push relay capability.

Push is optional: ``create_push_relay`` probes the configuration once at
startup and returns either an HTTP relay or a no-op relay. Callers check
``available`` instead of handling import or configuration failures.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests
from requests import Session

from stray_match.config.loader import NotificationConfig
from stray_match.core.errors import NotificationFailure
from stray_match.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PushMessage:
    """One push notification addressed to a device token."""
    to: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {"to": self.to, "title": self.title, "body": self.body, "data": self.data}


class NullPushRelay:
    """Relay used when push is not configured. Sends nothing."""

    available = False

    def send(self, message: PushMessage, timeout: Optional[float] = None) -> None:
        logger.debug(f"Push unavailable, dropping notification '{message.title}'")


class HttpPushRelay:
    """Relay that POSTs ``{to, title, body, data}`` to a push endpoint.

    Example:
        relay = HttpPushRelay("https://exp.host/--/api/v2/push/send")
        relay.send(PushMessage(to=token, title="Hi", body="There"))
    """

    available = True

    def __init__(self, url: str, timeout: float = 10.0, session: Optional[Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session if session is not None else self._create_session()

    @staticmethod
    def _create_session() -> Session:
        session = Session()
        session.headers.update({
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        })
        return session

    def send(self, message: PushMessage, timeout: Optional[float] = None) -> None:
        """Deliver one message.

        Raises:
            NotificationFailure: On transport errors, non-2xx responses or
                a relay-reported error
        """
        try:
            response = self.session.post(
                self.url,
                json=message.to_payload(),
                timeout=timeout or self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationFailure(f"push relay request failed: {e}") from e

        ticket = self._ticket(response)
        if ticket.get("status") == "error":
            raise NotificationFailure(f"push relay rejected message: {ticket.get('message', 'unknown error')}")

    @staticmethod
    def _ticket(response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        data = body.get("data") if isinstance(body, dict) else None
        return data if isinstance(data, dict) else {}


def create_push_relay(config: NotificationConfig, session: Optional[Session] = None):
    """Probe push configuration once and return the matching relay."""
    url = (config.push_url or "").strip()
    if not url.startswith(("http://", "https://")):
        logger.info("Push relay not configured; notifications disabled")
        return NullPushRelay()
    return HttpPushRelay(url, timeout=config.timeout_seconds, session=session)
