"""Recording orchestration against the egress service."""

import asyncio
from datetime import UTC, datetime

from app.config import Settings
from app.core.errors import (
    ConfigurationMissing,
    ExternalServiceFailure,
    FailureKind,
    Forbidden,
    PreconditionFailed,
)
from app.models.recording.records import (
    JobInfo,
    JobStatus,
    RecordingRecord,
    RecordingStatus,
)
from app.models.session import Session
from app.services.livekit import LiveKitClient, has_active_audio
from app.services.recording_store import RecordingStore
from app.services.session_registry import SessionRegistry
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


def recording_timestamp(now: datetime | None = None) -> str:
    """Timestamp safe to embed in an object key."""
    now = now or datetime.now(UTC)
    return now.isoformat().replace(":", "-").replace(".", "-").replace("+", "-")


class RecordingController:
    """Starts and stops recording jobs and finalizes their metadata."""

    def __init__(
        self,
        settings: Settings,
        registry: SessionRegistry,
        store: RecordingStore,
        livekit: LiveKitClient,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._store = store
        self._livekit = livekit

    def build_filepath(self, session_id: str, now: datetime | None = None) -> str:
        recording = self._settings.recording
        prefix = recording.path_prefix.strip("/")
        name = f"{session_id}-{recording_timestamp(now)}.{recording.file_format}"
        return f"{prefix}/{session_id}/{name}" if prefix else f"{session_id}/{name}"

    async def start_for_session(self, session_id: str, identity: str | None) -> str:
        """Creator-initiated start of a session's recording."""
        session = await self._registry.require_session(session_id)
        if not await self._registry.is_creator(session_id, identity):
            raise Forbidden("Only the session creator can start recording")
        if session.is_recording:
            raise PreconditionFailed("Recording is already in progress")

        logger.info(
            "Attempting to start recording",
            extra={"session_id": session_id, "room_name": session.room_name},
        )
        return await self.start(session.room_name, session_id)

    async def stop_for_session(self, session_id: str, identity: str | None) -> None:
        """Creator-initiated stop of a session's recording."""
        session = await self._registry.require_session(session_id)
        if not await self._registry.is_creator(session_id, identity):
            raise Forbidden("Only the session creator can stop recording")
        if not session.is_recording or not session.recording_job_id:
            raise PreconditionFailed("No recording in progress")

        await self.stop(session.recording_job_id)

    async def start(self, room_name: str, session_id: str) -> str:
        """Start an audio-only composite recording of the room.

        Returns:
            The egress job id

        Raises:
            ConfigurationMissing: Storage credentials are not configured
            PreconditionFailed: The room has no participants or a job is in flight
            ExternalServiceFailure: The media server rejected or failed the call
        """
        storage = self._settings.storage
        if not storage.is_configured:
            raise ConfigurationMissing(
                "Storage configuration is missing. Please set "
                f"{', '.join(storage.missing)} environment variables."
            )

        await self._registry.begin_recording(session_id)
        try:
            await self._check_room(room_name)

            filepath = self.build_filepath(session_id)
            info = await self._livekit.start_room_composite_egress(
                room_name,
                filepath,
                storage,
                file_format=self._settings.recording.file_format,
            )
            if not info.job_id:
                raise ExternalServiceFailure("Egress service returned no job id")

            await self._registry.set_recording(session_id, info.job_id)
        except (Exception, asyncio.CancelledError):
            await self._registry.abort_recording(session_id)
            raise

        logger.info(
            "Egress started",
            extra={
                "session_id": session_id,
                "room_name": room_name,
                "job_id": info.job_id,
                "filepath": filepath,
            },
        )
        return info.job_id

    async def _check_room(self, room_name: str) -> None:
        try:
            participants = await self._livekit.list_participants(room_name)
        except ExternalServiceFailure as e:
            if e.kind is not FailureKind.NOT_FOUND:
                raise
            participants = []

        logger.info(
            "Checked room participants",
            extra={"room_name": room_name, "participant_count": len(participants)},
        )
        if not participants:
            raise PreconditionFailed(
                f"Room {room_name} has no participants. Recording requires at "
                "least one active participant in the room."
            )

        if not any(has_active_audio(p) for p in participants):
            logger.warning(
                "No active audio tracks found, recording may be empty",
                extra={
                    "room_name": room_name,
                    "participants": [p.identity for p in participants],
                },
            )

        # Give freshly joined participants time to finish connecting
        if self._settings.recording.start_delay > 0:
            await asyncio.sleep(self._settings.recording.start_delay)

    async def get_job_status(self, job_id: str) -> JobStatus | None:
        info = await self._livekit.get_egress(job_id)
        return info.status if info else None

    async def stop(self, job_id: str) -> None:
        """Ask the egress service to stop a job.

        Completion is asynchronous and arrives through the egress_ended
        webhook, except for jobs found already failed, which are finalized
        here.
        """
        info = await self._livekit.get_egress(job_id)
        if info is None:
            # No webhook will ever arrive for a job the server does not know
            session = await self._registry.find_by_job(job_id)
            logger.warning(
                "Egress not found, releasing session",
                extra={
                    "job_id": job_id,
                    "session_id": session.session_id if session else None,
                },
            )
            if session is not None:
                await self._registry.clear_recording(session.session_id)
            return

        logger.info(
            "Current egress status",
            extra={"job_id": job_id, "status": info.status},
        )

        if info.status.is_failure:
            logger.warning(
                "Egress already terminated, finalizing",
                extra={"job_id": job_id, "status": info.status, "error": info.error},
            )
            await self.handle_completion(job_id, info)
            return

        if info.status.is_finishing:
            logger.info(
                "Egress already finishing, completion will follow",
                extra={"job_id": job_id, "status": info.status},
            )
            return

        session = await self._registry.find_by_job(job_id)
        if session is not None:
            await self._registry.mark_stopping(session.session_id, job_id)

        try:
            await self._livekit.stop_egress(job_id)
        except ExternalServiceFailure as e:
            if e.kind is not FailureKind.PRECONDITION:
                raise
            logger.warning(
                "Egress cannot be stopped, re-checking status",
                extra={"job_id": job_id, "error": e.upstream_message},
            )
            refreshed = await self._livekit.get_egress(job_id)
            if refreshed is not None and refreshed.status.is_failure:
                await self.handle_completion(job_id, refreshed)
            return

        logger.info("Egress stop requested", extra={"job_id": job_id})

    async def handle_completion(self, job_id: str, job_info: JobInfo) -> RecordingRecord | None:
        """Record the outcome of a finished job and free the session.

        Never raises: this runs after the webhook has been acknowledged.
        """
        try:
            session = await self._registry.find_by_job(job_id)
            if session is None:
                logger.warning(
                    "No session found for egress", extra={"job_id": job_id}
                )
                return None
            return await self._finalize(session, job_id, job_info)
        except Exception as e:
            logger.error(
                "Error handling recording completion",
                extra={"job_id": job_id, "error": str(e)},
                exc_info=True,
            )
            return None

    async def _finalize(
        self, session: Session, job_id: str, job_info: JobInfo
    ) -> RecordingRecord | None:
        failed = job_info.status.is_failure
        ended_at = datetime.now(UTC)
        started_at = session.recording_started_at or ended_at

        file_url = job_info.file_url
        if not file_url and job_info.file_location:
            file_url = self._settings.storage.public_url_for(job_info.file_location)

        saved = None
        try:
            record = RecordingRecord(
                session_id=session.session_id,
                job_id=job_id,
                started_at=started_at,
                ended_at=ended_at,
                duration=int((ended_at - started_at).total_seconds()),
                file_location=job_info.file_location,
                file_url=file_url,
                status=RecordingStatus.FAILED if failed else RecordingStatus.COMPLETED,
                job_status=job_info.status,
                error=(job_info.error or "Unknown error") if failed else None,
            )
            saved = await self._store.save(record)
        except Exception as e:
            logger.error(
                "Error saving recording metadata",
                extra={"job_id": job_id, "session_id": session.session_id, "error": str(e)},
                exc_info=True,
            )
        finally:
            await self._registry.clear_recording(session.session_id)

        if saved is not None:
            log = logger.warning if failed else logger.info
            log(
                "Recording failed, metadata saved" if failed else "Recording saved",
                extra={
                    "recording_id": saved.id,
                    "session_id": session.session_id,
                    "job_id": job_id,
                    "status": saved.status,
                    "duration": saved.duration,
                    "file_url": saved.file_url,
                    "error": saved.error,
                },
            )
        return saved
