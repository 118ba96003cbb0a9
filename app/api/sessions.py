"""Session endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Request

from app.api.deps import get_registry, get_token_issuer
from app.core.errors import MalformedPayload
from app.models.recording.requests import CreateSessionRequest, JoinSessionRequest
from app.models.session import is_valid_session_id
from app.services.session_registry import SessionRegistry
from app.services.token_issuer import TokenIssuer
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.post("/create")
async def create_session(
    request: Request,
    body: CreateSessionRequest | None = None,
    registry: SessionRegistry = Depends(get_registry),
) -> dict[str, Any]:
    creator_identity = body.creator_identity if body else None
    session = await registry.create_session(creator_identity)
    return {
        "success": True,
        "sessionId": session.session_id,
        "creatorIdentity": session.creator_identity,
        "shareableLink": f"{str(request.base_url).rstrip('/')}?sessionId={session.session_id}",
    }


@router.post("/{session_id}/join")
async def join_session(
    session_id: str,
    body: JoinSessionRequest | None = None,
    registry: SessionRegistry = Depends(get_registry),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
) -> dict[str, Any]:
    """Issue a join token, creating the session on first use of its id."""
    identity = body.identity if body else None

    session = await registry.get_session(session_id)
    if session is None:
        if not is_valid_session_id(session_id):
            raise MalformedPayload(
                "Invalid session ID format. Must be 8-10 uppercase alphanumeric "
                "characters, or 3-100 alphanumeric characters with hyphens/underscores."
            )
        session = await registry.create_or_get_session(session_id, identity)

    issued = token_issuer.generate_token(session.room_name, identity)

    # The first participant to join an unowned session becomes its creator
    await registry.claim_creator(session_id, issued.identity)

    return {
        "success": True,
        "token": issued.token,
        "endpointUrl": issued.endpoint_url,
        "identity": issued.identity,
        "roomName": issued.room_name,
        "sessionId": session.session_id,
    }


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> dict[str, Any]:
    session = await registry.require_session(session_id)
    return {"success": True, "session": session.summary()}
