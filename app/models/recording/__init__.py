"""Recording module."""

from .records import JobInfo, JobStatus, RecordingRecord, RecordingStatus
from .requests import (
    CreateSessionRequest,
    JoinSessionRequest,
    RecordingControlRequest,
    TokenRequest,
)

__all__ = [
    "JobInfo",
    "JobStatus",
    "RecordingRecord",
    "RecordingStatus",
    "CreateSessionRequest",
    "JoinSessionRequest",
    "RecordingControlRequest",
    "TokenRequest",
]
