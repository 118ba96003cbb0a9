"""Recording control and metadata endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from app.api.deps import get_controller, get_recording_store
from app.core.errors import NotFound
from app.models.recording.requests import RecordingControlRequest
from app.services.recording_controller import RecordingController
from app.services.recording_store import RecordingStore
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/recordings", tags=["recordings"])


@router.get("/session/{session_id}")
async def list_session_recordings(
    session_id: str,
    store: RecordingStore = Depends(get_recording_store),
) -> dict[str, Any]:
    recordings = await store.get_by_session(session_id)
    return {"success": True, "recordings": [r.to_response() for r in recordings]}


@router.post("/session/{session_id}/start")
async def start_recording(
    session_id: str,
    body: RecordingControlRequest | None = None,
    controller: RecordingController = Depends(get_controller),
) -> dict[str, Any]:
    identity = body.identity if body else None
    job_id = await controller.start_for_session(session_id, identity)
    return {
        "success": True,
        "jobId": job_id,
        "message": "Recording started successfully",
    }


@router.post("/session/{session_id}/stop")
async def stop_recording(
    session_id: str,
    body: RecordingControlRequest | None = None,
    controller: RecordingController = Depends(get_controller),
) -> dict[str, Any]:
    identity = body.identity if body else None
    await controller.stop_for_session(session_id, identity)
    return {
        "success": True,
        "message": "Recording stop requested. File will be processed and stored.",
    }


@router.get("/{recording_id}")
async def get_recording(
    recording_id: str,
    store: RecordingStore = Depends(get_recording_store),
) -> dict[str, Any]:
    recording = await store.get_by_id(recording_id)
    if recording is None:
        raise NotFound("Recording not found")
    return {"success": True, "recording": recording.to_response()}


@router.get("")
async def list_recordings(
    store: RecordingStore = Depends(get_recording_store),
) -> dict[str, Any]:
    recordings = await store.get_all()
    return {"success": True, "recordings": [r.to_response() for r in recordings]}


@router.delete("/{recording_id}")
async def delete_recording(
    recording_id: str,
    store: RecordingStore = Depends(get_recording_store),
) -> dict[str, Any]:
    if not await store.delete(recording_id):
        raise NotFound("Recording not found")
    return {"success": True}
