"""Inbound media server notifications."""

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from app.api.deps import get_event_bus, verify_webhook_secret
from app.core.errors import MalformedPayload
from app.core.events.bus import EventBus
from app.models.webhook import WebhookEvent
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/livekit", dependencies=[Depends(verify_webhook_secret)])
async def livekit_webhook(
    request: Request,
    event_bus: EventBus = Depends(get_event_bus),
) -> dict[str, Any]:
    """Accept a lifecycle event and dispatch it to the registered handlers.

    Handler failures are logged by the bus and still acknowledged, so the
    media server does not keep redelivering an event we cannot process.
    """
    try:
        payload = await request.json()
    except ValueError as e:
        raise MalformedPayload("Webhook body is not valid JSON") from e

    try:
        event = WebhookEvent.model_validate(payload)
    except ValidationError as e:
        raise MalformedPayload(f"Invalid webhook payload: {e.error_count()} error(s)") from e

    logger.info(
        "Received webhook event",
        extra={"event_name": event.event, "event_id": event.event_id},
    )
    await event_bus.publish(event)
    return {"success": True}
