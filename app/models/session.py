"""Session models."""

import re
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Generated ids and ids coming from external room naming schemes
GENERATED_SESSION_ID = re.compile(r"[A-Z0-9]{8,10}")
NAMED_SESSION_ID = re.compile(r"[a-zA-Z0-9\-_]{3,100}")


def is_valid_session_id(session_id: str | None) -> bool:
    """Check whether an unknown id may be used to auto-create a session."""
    if not session_id:
        return False
    return bool(
        GENERATED_SESSION_ID.fullmatch(session_id) or NAMED_SESSION_ID.fullmatch(session_id)
    )


class RecordingState(str, Enum):
    """Per-session recording lifecycle."""

    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"


class Session(BaseModel):
    """A shared meeting place, mapped one to one onto a media room."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    creator_identity: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    participants: set[str] = Field(default_factory=set)
    recording_state: RecordingState = RecordingState.IDLE
    recording_job_id: str | None = None
    recording_started_at: datetime | None = None

    @property
    def room_name(self) -> str:
        return self.session_id

    @property
    def is_recording(self) -> bool:
        return self.recording_job_id is not None

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    def summary(self) -> dict[str, Any]:
        """Public view returned by the session lookup endpoint."""
        return {
            "sessionId": self.session_id,
            "createdAt": self.created_at.isoformat(),
            "creatorIdentity": self.creator_identity,
            "participantCount": self.participant_count,
            "isRecording": self.is_recording,
        }
