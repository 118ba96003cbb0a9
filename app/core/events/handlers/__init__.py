"""Event handlers package."""

from .webhook import (
    EGRESS_ENDED,
    EGRESS_FAILED,
    EGRESS_STARTED,
    PARTICIPANT_JOINED,
    PARTICIPANT_LEFT,
    WebhookHandlers,
)

__all__ = [
    "WebhookHandlers",
    "PARTICIPANT_JOINED",
    "PARTICIPANT_LEFT",
    "EGRESS_STARTED",
    "EGRESS_ENDED",
    "EGRESS_FAILED",
]
