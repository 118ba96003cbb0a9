"""Core event system."""

from .bus import EventBus, EventHandler
from .handlers import WebhookHandlers

__all__ = [
    "EventBus",
    "EventHandler",
    "WebhookHandlers",
]
