"""Tests for recording orchestration."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from app.config import StorageSettings
from app.core.errors import (
    ConfigurationMissing,
    ExternalServiceFailure,
    FailureKind,
    Forbidden,
    NotFound,
    PreconditionFailed,
)
from app.models.recording.records import JobInfo, JobStatus, RecordingStatus
from app.models.session import RecordingState
from app.services.recording_controller import RecordingController, recording_timestamp


async def start_session_recording(registry, controller, session_id="ABCD1234"):
    await registry.create_or_get_session(session_id, "alice")
    return await controller.start(session_id, session_id)


def test_recording_timestamp_is_key_safe():
    now = datetime(2024, 1, 1, 12, 0, 0, 123000, tzinfo=UTC)

    stamp = recording_timestamp(now)

    assert stamp == "2024-01-01T12-00-00-123000-00-00"
    assert ":" not in stamp and "+" not in stamp


def test_build_filepath(controller):
    now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

    path = controller.build_filepath("ABCD1234", now)

    assert path == "audios/ABCD1234/ABCD1234-2024-01-01T12-00-00-00-00.ogg"


def test_build_filepath_uses_configured_format(settings, registry, recording_store, livekit):
    settings.recording.file_format = "mp4"
    settings.recording.path_prefix = "/meetings/"
    controller = RecordingController(settings, registry, recording_store, livekit)

    path = controller.build_filepath("ABCD1234")

    assert path.startswith("meetings/ABCD1234/ABCD1234-")
    assert path.endswith(".mp4")


@pytest.mark.asyncio
async def test_start_without_storage_fails_before_any_call(
    settings, registry, recording_store, livekit
):
    settings.storage = StorageSettings(access_key="access")
    controller = RecordingController(settings, registry, recording_store, livekit)
    await registry.create_or_get_session("ABCD1234", "alice")

    with pytest.raises(ConfigurationMissing) as exc_info:
        await controller.start("ABCD1234", "ABCD1234")

    assert "R2_SECRET_KEY" in exc_info.value.message
    assert "R2_ACCESS_KEY" not in exc_info.value.message
    livekit.list_participants.assert_not_called()
    livekit.start_room_composite_egress.assert_not_called()
    session = await registry.get_session("ABCD1234")
    assert session.recording_state is RecordingState.IDLE


@pytest.mark.asyncio
async def test_start_in_empty_room_fails(registry, controller, livekit):
    livekit.list_participants.return_value = []
    await registry.create_or_get_session("ABCD1234", "alice")

    with pytest.raises(PreconditionFailed) as exc_info:
        await controller.start("ABCD1234", "ABCD1234")

    assert "no participants" in exc_info.value.message
    livekit.start_room_composite_egress.assert_not_called()
    session = await registry.get_session("ABCD1234")
    assert session.recording_state is RecordingState.IDLE
    assert not session.is_recording


@pytest.mark.asyncio
async def test_start_in_unknown_room_counts_as_empty(registry, controller, livekit):
    livekit.list_participants.side_effect = ExternalServiceFailure(
        "room not found", kind=FailureKind.NOT_FOUND
    )
    await registry.create_or_get_session("ABCD1234", "alice")

    with pytest.raises(PreconditionFailed):
        await controller.start("ABCD1234", "ABCD1234")


@pytest.mark.asyncio
async def test_start_records_job_on_session(registry, controller, livekit, settings):
    job_id = await start_session_recording(registry, controller)

    assert job_id == "EG_test"
    session = await registry.get_session("ABCD1234")
    assert session.is_recording
    assert session.recording_job_id == "EG_test"
    assert session.recording_state is RecordingState.ACTIVE
    assert (await registry.find_by_job("EG_test")).session_id == "ABCD1234"

    args, kwargs = livekit.start_room_composite_egress.call_args
    room_name, filepath, storage = args
    assert room_name == "ABCD1234"
    assert filepath.startswith("audios/ABCD1234/ABCD1234-")
    assert filepath.endswith(".ogg")
    assert storage is settings.storage
    assert kwargs == {"file_format": "ogg"}


@pytest.mark.asyncio
async def test_start_without_active_audio_still_starts(
    registry, controller, livekit, make_participant
):
    livekit.list_participants.return_value = [make_participant("alice", muted=True)]

    job_id = await start_session_recording(registry, controller)

    assert job_id == "EG_test"


@pytest.mark.asyncio
async def test_start_failure_returns_session_to_idle(registry, controller, livekit):
    livekit.start_room_composite_egress.side_effect = ExternalServiceFailure(
        "Audio capture is not available", kind=FailureKind.MISSING_DEPENDENCY
    )

    with pytest.raises(ExternalServiceFailure) as exc_info:
        await start_session_recording(registry, controller)

    assert exc_info.value.kind is FailureKind.MISSING_DEPENDENCY
    session = await registry.get_session("ABCD1234")
    assert session.recording_state is RecordingState.IDLE
    assert not session.is_recording


@pytest.mark.asyncio
async def test_cancelled_start_returns_session_to_idle(registry, controller, livekit):
    livekit.start_room_composite_egress.side_effect = asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await start_session_recording(registry, controller)

    session = await registry.get_session("ABCD1234")
    assert session.recording_state is RecordingState.IDLE
    assert not session.is_recording


@pytest.mark.asyncio
async def test_start_without_job_id_is_an_upstream_failure(registry, controller, livekit):
    livekit.start_room_composite_egress.return_value = JobInfo(job_id="")

    with pytest.raises(ExternalServiceFailure):
        await start_session_recording(registry, controller)

    session = await registry.get_session("ABCD1234")
    assert session.recording_state is RecordingState.IDLE


@pytest.mark.asyncio
async def test_second_start_is_rejected(registry, controller, livekit):
    await start_session_recording(registry, controller)

    with pytest.raises(PreconditionFailed):
        await controller.start("ABCD1234", "ABCD1234")

    assert livekit.start_room_composite_egress.await_count == 1


@pytest.mark.asyncio
async def test_start_for_session_checks_creator(registry, controller):
    await registry.create_or_get_session("ABCD1234", "alice")

    with pytest.raises(Forbidden):
        await controller.start_for_session("ABCD1234", "bob")
    with pytest.raises(Forbidden):
        await controller.start_for_session("ABCD1234", None)
    with pytest.raises(NotFound):
        await controller.start_for_session("NOPE0000", "alice")

    assert await controller.start_for_session("ABCD1234", "alice") == "EG_test"


@pytest.mark.asyncio
async def test_stop_for_session_requires_recording(registry, controller):
    await registry.create_or_get_session("ABCD1234", "alice")

    with pytest.raises(PreconditionFailed) as exc_info:
        await controller.stop_for_session("ABCD1234", "alice")

    assert exc_info.value.message == "No recording in progress"


@pytest.mark.asyncio
async def test_stop_for_session_checks_creator(registry, controller):
    await start_session_recording(registry, controller)

    with pytest.raises(Forbidden):
        await controller.stop_for_session("ABCD1234", "bob")


@pytest.mark.asyncio
async def test_stop_active_job_keeps_it_until_completion(registry, controller, livekit):
    await start_session_recording(registry, controller)

    await controller.stop_for_session("ABCD1234", "alice")

    livekit.stop_egress.assert_awaited_once_with("EG_test")
    session = await registry.get_session("ABCD1234")
    assert session.recording_state is RecordingState.STOPPING
    assert session.recording_job_id == "EG_test"
    assert session.is_recording


@pytest.mark.asyncio
async def test_stop_unknown_job_is_a_no_op(controller, livekit):
    livekit.get_egress.return_value = None

    await controller.stop("EG_missing")

    livekit.stop_egress.assert_not_called()


@pytest.mark.asyncio
async def test_stop_job_unknown_upstream_releases_session(registry, controller, livekit):
    await start_session_recording(registry, controller)
    livekit.get_egress.return_value = None

    await controller.stop_for_session("ABCD1234", "alice")

    livekit.stop_egress.assert_not_called()
    session = await registry.get_session("ABCD1234")
    assert not session.is_recording
    assert session.recording_state is RecordingState.IDLE
    assert await registry.find_by_job("EG_test") is None

    livekit.start_room_composite_egress.return_value = JobInfo(
        job_id="EG_next", status=JobStatus.STARTING
    )
    assert await controller.start_for_session("ABCD1234", "alice") == "EG_next"


@pytest.mark.asyncio
async def test_stop_finishing_job_does_not_call_stop(registry, controller, livekit):
    await start_session_recording(registry, controller)
    livekit.get_egress.return_value = JobInfo(job_id="EG_test", status=JobStatus.COMPLETE)

    await controller.stop("EG_test")

    livekit.stop_egress.assert_not_called()
    assert (await registry.get_session("ABCD1234")).is_recording


@pytest.mark.asyncio
async def test_stop_failed_job_finalizes_it(registry, controller, livekit, recording_store):
    await start_session_recording(registry, controller)
    livekit.get_egress.return_value = JobInfo(
        job_id="EG_test", status=JobStatus.FAILED, error="Start signal not received"
    )

    await controller.stop("EG_test")

    livekit.stop_egress.assert_not_called()
    records = await recording_store.get_by_session("ABCD1234")
    assert len(records) == 1
    assert records[0].status is RecordingStatus.FAILED
    assert records[0].error == "Start signal not received"
    session = await registry.get_session("ABCD1234")
    assert not session.is_recording
    assert session.recording_state is RecordingState.IDLE


@pytest.mark.asyncio
async def test_stop_rejected_by_egress_rechecks_status(
    registry, controller, livekit, recording_store
):
    await start_session_recording(registry, controller)
    livekit.stop_egress.side_effect = ExternalServiceFailure(
        "egress cannot be stopped", kind=FailureKind.PRECONDITION
    )
    livekit.get_egress.side_effect = [
        JobInfo(job_id="EG_test", status=JobStatus.ACTIVE),
        JobInfo(job_id="EG_test", status=JobStatus.ABORTED),
    ]

    await controller.stop("EG_test")

    records = await recording_store.get_all()
    assert [r.status for r in records] == [RecordingStatus.FAILED]
    assert records[0].error == "Unknown error"
    assert not (await registry.get_session("ABCD1234")).is_recording


@pytest.mark.asyncio
async def test_stop_upstream_error_propagates(registry, controller, livekit):
    await start_session_recording(registry, controller)
    livekit.stop_egress.side_effect = ExternalServiceFailure("boom")

    with pytest.raises(ExternalServiceFailure):
        await controller.stop("EG_test")


@pytest.mark.asyncio
async def test_get_job_status(controller, livekit):
    assert await controller.get_job_status("EG_test") is JobStatus.ACTIVE

    livekit.get_egress.return_value = None
    assert await controller.get_job_status("EG_test") is None


@pytest.mark.asyncio
async def test_handle_completion_computes_duration(registry, controller, recording_store):
    await start_session_recording(registry, controller)
    session = await registry.get_session("ABCD1234")
    session.recording_started_at = datetime.now(UTC) - timedelta(seconds=125)

    record = await controller.handle_completion(
        "EG_test",
        JobInfo(
            job_id="EG_test",
            status=JobStatus.COMPLETE,
            file_location="audios/ABCD1234/ABCD1234-x.ogg",
            file_url="https://cdn.example.com/audios/ABCD1234/ABCD1234-x.ogg",
        ),
    )

    assert record.duration == 125
    assert record.status is RecordingStatus.COMPLETED
    assert record.error is None
    assert record.file_url == "https://cdn.example.com/audios/ABCD1234/ABCD1234-x.ogg"
    assert await recording_store.get_by_id(record.id) is record
    session = await registry.get_session("ABCD1234")
    assert not session.is_recording
    assert session.recording_state is RecordingState.IDLE


@pytest.mark.asyncio
async def test_handle_completion_builds_url_from_bucket(registry, controller):
    await start_session_recording(registry, controller)

    record = await controller.handle_completion(
        "EG_test",
        JobInfo(job_id="EG_test", status=JobStatus.COMPLETE, file_location="audios/a.ogg"),
    )

    assert record.file_url == "https://recordings.acct.r2.cloudflarestorage.com/audios/a.ogg"


@pytest.mark.asyncio
async def test_handle_completion_prefers_public_url(registry, controller, settings):
    settings.storage.public_url = "https://files.example.com/"
    await start_session_recording(registry, controller)

    record = await controller.handle_completion(
        "EG_test",
        JobInfo(job_id="EG_test", status=JobStatus.COMPLETE, file_location="audios/a.ogg"),
    )

    assert record.file_url == "https://files.example.com/audios/a.ogg"


@pytest.mark.asyncio
async def test_handle_completion_for_unknown_job(controller, recording_store):
    result = await controller.handle_completion(
        "EG_unknown", JobInfo(job_id="EG_unknown", status=JobStatus.COMPLETE)
    )

    assert result is None
    assert await recording_store.get_all() == []


@pytest.mark.asyncio
async def test_handle_completion_clears_session_when_save_fails(
    registry, controller, recording_store
):
    await start_session_recording(registry, controller)
    recording_store.save = AsyncMock(side_effect=RuntimeError("disk full"))

    result = await controller.handle_completion(
        "EG_test", JobInfo(job_id="EG_test", status=JobStatus.COMPLETE)
    )

    assert result is None
    session = await registry.get_session("ABCD1234")
    assert not session.is_recording
    assert session.recording_state is RecordingState.IDLE


@pytest.mark.asyncio
async def test_session_can_record_again_after_completion(registry, controller, livekit):
    await start_session_recording(registry, controller)
    await controller.handle_completion(
        "EG_test", JobInfo(job_id="EG_test", status=JobStatus.COMPLETE)
    )
    livekit.start_room_composite_egress.return_value = JobInfo(job_id="EG_second")

    assert await controller.start("ABCD1234", "ABCD1234") == "EG_second"
