"""Request models for session, token and recording endpoints."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateSessionRequest(_CamelModel):
    creator_identity: str | None = Field(
        default=None, description="Identity of the participant owning the session"
    )


class JoinSessionRequest(_CamelModel):
    identity: str | None = Field(
        default=None, description="Participant identity, generated when omitted"
    )


class RecordingControlRequest(_CamelModel):
    identity: str | None = Field(
        default=None, description="Identity of the participant issuing the command"
    )


class TokenRequest(_CamelModel):
    identity: str | None = None
    room_name: str = Field(default="test-room")
