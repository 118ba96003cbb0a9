"""Media server API adapter.

Wraps the room and egress services of the LiveKit server SDK and turns
every upstream failure into an ``ExternalServiceFailure`` with a
``FailureKind``, so callers never need to inspect error strings.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import aiohttp
from livekit import api

from app.config import LiveKitSettings, StorageSettings
from app.core.errors import ExternalServiceFailure, FailureKind
from app.models.recording.records import JobInfo
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

FILE_TYPES = {"ogg": api.EncodedFileType.OGG, "mp4": api.EncodedFileType.MP4}

# Upstream messages hinting that the egress host lacks its audio subsystem
_MISSING_DEPENDENCY_HINTS = ("pulse",)
_UNREACHABLE_HINTS = ("start signal not received", "connection", "timeout")


def classify_failure(
    status_code: int | None, code: str | None, message: str
) -> FailureKind:
    """Map an upstream error onto the application's failure taxonomy."""
    lowered = message.lower()
    if code == "failed_precondition" or status_code == 412:
        return FailureKind.PRECONDITION
    if code == "not_found" or status_code == 404:
        return FailureKind.NOT_FOUND
    if any(hint in lowered for hint in _MISSING_DEPENDENCY_HINTS):
        return FailureKind.MISSING_DEPENDENCY
    if code == "unavailable" or any(hint in lowered for hint in _UNREACHABLE_HINTS):
        return FailureKind.UNREACHABLE
    return FailureKind.UPSTREAM


def has_active_audio(participant: api.ParticipantInfo) -> bool:
    """True when the participant publishes at least one unmuted audio track."""
    return any(
        track.type == api.TrackType.AUDIO and not track.muted
        for track in participant.tracks
    )


def job_info(egress: api.EgressInfo) -> JobInfo:
    """Convert the SDK's egress description into a ``JobInfo``."""
    return JobInfo.from_payload(
        {
            "egress_id": egress.egress_id,
            "room_name": egress.room_name,
            "status": egress.status,
            "error": egress.error,
            "file_results": [
                {"filename": result.filename, "location": result.location}
                for result in egress.file_results
            ],
        }
    )


class LiveKitClient:
    """Room listing and egress control against the media server."""

    def __init__(
        self,
        settings: LiveKitSettings,
        lkapi: api.LiveKitAPI | None = None,
    ) -> None:
        self._settings = settings
        self._api = lkapi or api.LiveKitAPI(
            settings.http_url,
            settings.api_key,
            settings.api_secret,
            timeout=aiohttp.ClientTimeout(total=settings.timeout),
        )

    async def aclose(self) -> None:
        await self._api.aclose()

    async def _call(self, method: str, request: Awaitable[T]) -> T:
        try:
            return await request
        except api.TwirpError as e:
            raise self._failure_from_twirp(method, e) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(
                "Media server unreachable",
                extra={"url": self._settings.http_url, "method": method, "error": str(e)},
            )
            raise ExternalServiceFailure(
                f"Could not reach the media server at {self._settings.http_url}. "
                f"Please verify it is running and accessible. Error: {e}",
                kind=FailureKind.UNREACHABLE,
                upstream_message=str(e),
            ) from e

    def _failure_from_twirp(
        self, method: str, error: api.TwirpError
    ) -> ExternalServiceFailure:
        message = error.message or str(error)
        kind = classify_failure(error.status, error.code, message)
        logger.error(
            "Media server call failed",
            extra={
                "method": method,
                "status_code": error.status,
                "code": error.code,
                "error": message,
                "failure_kind": kind,
            },
        )

        if kind is FailureKind.MISSING_DEPENDENCY:
            text = (
                "Audio capture is not available on the egress service "
                f"(PulseAudio missing). Error: {message}"
            )
        elif kind is FailureKind.UNREACHABLE:
            text = (
                "The egress service cannot connect to the room. Check that "
                f"participants are present and the media server is reachable. Error: {message}"
            )
        else:
            text = f"{method} failed: {message}"
        return ExternalServiceFailure(text, kind=kind, upstream_message=message)

    async def list_participants(self, room_name: str) -> list[api.ParticipantInfo]:
        response = await self._call(
            "ListParticipants",
            self._api.room.list_participants(api.ListParticipantsRequest(room=room_name)),
        )
        return list(response.participants)

    async def start_room_composite_egress(
        self,
        room_name: str,
        filepath: str,
        storage: StorageSettings,
        file_format: str = "ogg",
    ) -> JobInfo:
        """Request audio-only composite encoding of the room into storage."""
        request = api.RoomCompositeEgressRequest(
            room_name=room_name,
            audio_only=True,
            file_outputs=[
                api.EncodedFileOutput(
                    file_type=FILE_TYPES.get(file_format, api.EncodedFileType.OGG),
                    filepath=filepath,
                    s3=api.S3Upload(
                        access_key=storage.access_key or "",
                        secret=storage.secret_key or "",
                        region=storage.upload_region,
                        bucket=storage.bucket or "",
                        endpoint=storage.endpoint or "",
                        force_path_style=True,
                    ),
                )
            ],
        )
        egress = await self._call(
            "StartRoomCompositeEgress",
            self._api.egress.start_room_composite_egress(request),
        )
        return job_info(egress)

    async def get_egress(self, job_id: str) -> JobInfo | None:
        response = await self._call(
            "ListEgress",
            self._api.egress.list_egress(api.ListEgressRequest(egress_id=job_id)),
        )
        if not response.items:
            return None
        return job_info(response.items[0])

    async def stop_egress(self, job_id: str) -> JobInfo:
        egress = await self._call(
            "StopEgress",
            self._api.egress.stop_egress(api.StopEgressRequest(egress_id=job_id)),
        )
        return job_info(egress)
