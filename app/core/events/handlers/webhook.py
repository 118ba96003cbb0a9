"""Media server webhook event handlers."""

from app.models.webhook import WebhookEvent
from app.services.recording_controller import RecordingController
from app.services.session_registry import SessionRegistry
from app.utils.logging_config import get_logger

from ..bus import EventBus

logger = get_logger(__name__)

PARTICIPANT_JOINED = "participant_joined"
PARTICIPANT_LEFT = "participant_left"
EGRESS_STARTED = "egress_started"
EGRESS_ENDED = "egress_ended"
EGRESS_FAILED = "egress_failed"


class WebhookHandlers:
    """Applies media server notifications to sessions and recordings.

    Recording is operator initiated only: joins and leaves never start or
    stop a recording job.
    """

    def __init__(self, registry: SessionRegistry, controller: RecordingController) -> None:
        self._registry = registry
        self._controller = controller

    async def register(self, event_bus: EventBus) -> None:
        await event_bus.subscribe(PARTICIPANT_JOINED, self.handle_participant_joined)
        await event_bus.subscribe(PARTICIPANT_LEFT, self.handle_participant_left)
        await event_bus.subscribe(EGRESS_STARTED, self.handle_egress_started)
        await event_bus.subscribe(EGRESS_ENDED, self.handle_egress_ended)
        await event_bus.subscribe(EGRESS_FAILED, self.handle_egress_ended)

    async def handle_participant_joined(self, event: WebhookEvent) -> None:
        room_name = event.room_name
        identity = event.participant_identity
        if not room_name or not identity:
            logger.warning(
                "participant_joined without room or participant",
                extra={"event_id": event.event_id},
            )
            return

        await self._registry.create_or_get_session(room_name, identity)
        await self._registry.claim_creator(room_name, identity)
        session = await self._registry.add_participant(room_name, identity)
        logger.info(
            "Participant joined",
            extra={
                "session_id": room_name,
                "identity": identity,
                "participant_count": session.participant_count,
            },
        )

    async def handle_participant_left(self, event: WebhookEvent) -> None:
        room_name = event.room_name
        identity = event.participant_identity
        if not room_name or not identity:
            logger.warning(
                "participant_left without room or participant",
                extra={"event_id": event.event_id},
            )
            return

        await self._registry.create_or_get_session(room_name)
        session = await self._registry.remove_participant(room_name, identity)
        logger.info(
            "Participant left",
            extra={
                "session_id": room_name,
                "identity": identity,
                "participant_count": session.participant_count,
            },
        )

    async def handle_egress_started(self, event: WebhookEvent) -> None:
        info = event.job_info()
        logger.info(
            "Egress started",
            extra={
                "job_id": info.job_id if info else None,
                "room_name": event.room_name,
            },
        )

    async def handle_egress_ended(self, event: WebhookEvent) -> None:
        info = event.job_info()
        if info is None or not info.job_id:
            logger.warning(
                f"{event.event} without egress info",
                extra={"event_id": event.event_id},
            )
            return

        logger.info(
            "Egress ended",
            extra={"job_id": info.job_id, "room_name": info.room_name, "status": info.status},
        )
        await self._controller.handle_completion(info.job_id, info)
