"""Request dependencies resolving the services built at startup."""

import secrets

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.security.api_key import APIKeyHeader

from app.config import Settings
from app.core.errors import Unauthorized
from app.core.events.bus import EventBus
from app.services.recording_controller import RecordingController
from app.services.recording_store import RecordingStore
from app.services.session_registry import SessionRegistry
from app.services.token_issuer import TokenIssuer
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

HTTP_FORBIDDEN = 403

API_KEY_NAME = "X-API-Key"
api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=True)
webhook_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_recording_store(request: Request) -> RecordingStore:
    return request.app.state.recording_store


def get_controller(request: Request) -> RecordingController:
    return request.app.state.controller


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


async def get_api_key(
    api_key: str = Depends(api_key_header),
    settings: Settings = Depends(get_settings),
) -> str:
    """Validate API key from request header.

    Raises:
        HTTPException: If API key is invalid
    """
    expected = settings.server.api_key
    if expected and secrets.compare_digest(api_key, expected):
        return api_key
    raise HTTPException(
        status_code=HTTP_FORBIDDEN,
        detail="Could not validate API key",
    )


async def verify_webhook_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(webhook_bearer),
    settings: Settings = Depends(get_settings),
) -> None:
    """Check the shared bearer secret the media server sends with webhooks."""
    expected = settings.server.webhook_secret
    if (
        credentials is None
        or credentials.scheme.lower() != "bearer"
        or not secrets.compare_digest(credentials.credentials, expected)
    ):
        logger.warning("Unauthorized webhook request")
        raise Unauthorized("Unauthorized")
