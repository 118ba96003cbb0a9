"""Common test fixtures and configuration."""

import os
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from livekit import api

from app.config import (
    LiveKitSettings,
    RecordingSettings,
    ServerSettings,
    Settings,
    StorageSettings,
)
from app.main import create_app
from app.models.recording.records import JobInfo, JobStatus
from app.services.livekit import LiveKitClient
from app.services.recording_controller import RecordingController
from app.services.recording_store import InMemoryRecordingStore
from app.services.session_registry import SessionRegistry

# Set test environment
os.environ["API_KEY"] = "test_api_key"
os.environ["LOG_LEVEL"] = "DEBUG"

TEST_API_KEY = "test_api_key"
TEST_WEBHOOK_SECRET = "test-webhook-secret"


@pytest.fixture(autouse=True)
def log_dir(tmp_path, monkeypatch):
    """Keep log files out of the working tree."""
    path = tmp_path / "logs"
    monkeypatch.setenv("LOG_DIR", str(path))
    return path


def participant(
    identity: str, audio: bool = True, muted: bool = False
) -> api.ParticipantInfo:
    tracks = (
        [api.TrackInfo(sid=f"TR_{identity}", type=api.TrackType.AUDIO, muted=muted)]
        if audio
        else []
    )
    return api.ParticipantInfo(identity=identity, tracks=tracks)


@pytest.fixture
def make_participant():
    return participant


@pytest.fixture
def settings():
    return Settings(
        livekit=LiveKitSettings(
            api_key="test-key",
            api_secret="test-secret-that-is-long-enough-for-hs256",
            url="wss://media.example.com",
            http_url="https://media.example.com",
        ),
        storage=StorageSettings(
            access_key="access",
            secret_key="r2-secret-value",
            bucket="recordings",
            endpoint="https://acct.r2.cloudflarestorage.com",
            region="auto",
        ),
        server=ServerSettings(
            webhook_secret=TEST_WEBHOOK_SECRET,
            api_key=TEST_API_KEY,
            environment="test",
        ),
        recording=RecordingSettings(start_delay=0),
    )


@pytest.fixture
def livekit():
    """Media server adapter with a room holding one speaking participant."""
    client = AsyncMock(spec=LiveKitClient)
    client.list_participants.return_value = [participant("alice")]
    client.start_room_composite_egress.return_value = JobInfo(
        job_id="EG_test", status=JobStatus.STARTING
    )
    client.get_egress.return_value = JobInfo(job_id="EG_test", status=JobStatus.ACTIVE)
    client.stop_egress.return_value = JobInfo(job_id="EG_test", status=JobStatus.ENDING)
    return client


@pytest.fixture
def registry(settings):
    return SessionRegistry(settings=settings.session)


@pytest.fixture
def recording_store(settings):
    return InMemoryRecordingStore(retention_limit=settings.recording.retention_limit)


@pytest.fixture
def controller(settings, registry, recording_store, livekit):
    return RecordingController(settings, registry, recording_store, livekit)


@pytest.fixture
def app(settings, livekit):
    return create_app(settings=settings, livekit_client=livekit)


@pytest.fixture
def client(app):
    """Test client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def webhook_headers():
    return {"Authorization": f"Bearer {TEST_WEBHOOK_SECRET}"}
