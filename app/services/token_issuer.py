"""Access token minting for the media server."""

import time
import uuid
from datetime import timedelta

from livekit import api
from pydantic import BaseModel

from app.config import LiveKitSettings
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TOKEN_TTL = timedelta(hours=6)


class IssuedToken(BaseModel):
    token: str
    endpoint_url: str
    identity: str
    room_name: str


def generate_identity() -> str:
    """Synthesize an identity for anonymous participants."""
    return f"user-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class TokenIssuer:
    """Signs access credentials with the media server API secret."""

    def __init__(
        self, settings: LiveKitSettings, ttl: timedelta = DEFAULT_TOKEN_TTL
    ) -> None:
        self._settings = settings
        self._ttl = ttl

    def generate_token(self, room_name: str, identity: str | None = None) -> IssuedToken:
        """Mint a join token for ``room_name``.

        Every participant gets the same grants: join, publish and subscribe.
        Signing errors propagate to the caller unchanged.
        """
        identity = identity or generate_identity()
        grants = api.VideoGrants(
            room=room_name,
            room_join=True,
            can_publish=True,
            can_subscribe=True,
        )
        token = (
            api.AccessToken(self._settings.api_key, self._settings.api_secret)
            .with_identity(identity)
            .with_grants(grants)
            .with_ttl(self._ttl)
            .to_jwt()
        )
        logger.info(
            "Issued access token",
            extra={"room_name": room_name, "identity": identity},
        )
        return IssuedToken(
            token=token,
            endpoint_url=self._settings.url,
            identity=identity,
            room_name=room_name,
        )
