"""
Push notifications: match alerts to owners and nearby-sighting alerts.
"""

from .dispatcher import NotificationDispatcher
from .push import HttpPushRelay, NullPushRelay, PushMessage, create_push_relay

__all__ = ["NotificationDispatcher", "HttpPushRelay", "NullPushRelay", "PushMessage", "create_push_relay"]
