"""Inbound media server notification model."""

import uuid
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.models.recording.records import JobInfo


class WebhookEvent(BaseModel):
    """Lifecycle notification delivered by the media server."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event: str
    event_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        validation_alias=AliasChoices("id", "event_id", "eventId"),
    )
    room: dict[str, Any] | None = None
    participant: dict[str, Any] | None = None
    egress: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("egressInfo", "egress_info", "egress"),
    )

    @property
    def room_name(self) -> str | None:
        if self.room and self.room.get("name"):
            return self.room["name"]
        if self.egress:
            return self.egress.get("roomName") or self.egress.get("room_name")
        return None

    @property
    def participant_identity(self) -> str | None:
        if self.participant:
            return self.participant.get("identity")
        return None

    def job_info(self) -> JobInfo | None:
        if not self.egress:
            return None
        return JobInfo.from_payload(self.egress)
