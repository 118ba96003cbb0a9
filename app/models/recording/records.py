"""Recording job and recording metadata models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Numeric values of the egress status enum on the wire
_NUMERIC_JOB_STATUS = {
    0: "EGRESS_STARTING",
    1: "EGRESS_ACTIVE",
    2: "EGRESS_ENDING",
    3: "EGRESS_COMPLETE",
    4: "EGRESS_FAILED",
    5: "EGRESS_ABORTED",
    6: "EGRESS_LIMIT_REACHED",
}


class JobStatus(str, Enum):
    """Status of a recording job as reported by the egress service."""

    STARTING = "EGRESS_STARTING"
    ACTIVE = "EGRESS_ACTIVE"
    ENDING = "EGRESS_ENDING"
    COMPLETE = "EGRESS_COMPLETE"
    FAILED = "EGRESS_FAILED"
    ABORTED = "EGRESS_ABORTED"
    LIMIT_REACHED = "EGRESS_LIMIT_REACHED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def normalize(cls, value: Any) -> "JobStatus":
        """Accept numeric enum values, full names or bare names."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            value = _NUMERIC_JOB_STATUS.get(value)
        if not value:
            return cls.UNKNOWN
        name = str(value).upper()
        if not name.startswith("EGRESS_"):
            name = f"EGRESS_{name}"
        try:
            return cls(name)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_failure(self) -> bool:
        return self in (JobStatus.FAILED, JobStatus.ABORTED)

    @property
    def is_finishing(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.ENDING)

    @property
    def is_running(self) -> bool:
        return self in (JobStatus.STARTING, JobStatus.ACTIVE)


def _first(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


class JobInfo(BaseModel):
    """Snapshot of a recording job."""

    job_id: str
    room_name: str | None = None
    status: JobStatus = JobStatus.UNKNOWN
    error: str | None = None
    file_location: str | None = None
    file_url: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "JobInfo":
        """Build from an egress info object in either JSON naming style."""
        file_info: dict[str, Any] = {}
        file_results = _first(data, "file_results", "fileResults")
        if isinstance(file_results, list) and file_results:
            file_info = file_results[0] or {}
        elif isinstance(data.get("file"), dict):
            file_info = data["file"]

        location = _first(file_info, "location")
        file_url = _first(file_info, "url")
        if not file_url and isinstance(location, str) and location.startswith("http"):
            file_url = location

        return cls(
            job_id=_first(data, "egress_id", "egressId", "job_id") or "",
            room_name=_first(data, "room_name", "roomName"),
            status=JobStatus.normalize(_first(data, "status", "egressStatus")),
            error=_first(data, "error", "errorReason", "error_reason"),
            file_location=_first(file_info, "filename", "filepath", "name")
            or (location if location and not file_url else None),
            file_url=file_url,
        )


class RecordingStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class RecordingRecord(BaseModel):
    """Metadata of one finished (or failed) recording."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str | None = None
    session_id: str
    job_id: str
    started_at: datetime
    ended_at: datetime
    duration: int = Field(ge=0, description="Length of the recording in seconds")
    file_location: str | None = None
    file_url: str | None = None
    status: RecordingStatus
    job_status: JobStatus = JobStatus.UNKNOWN
    error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @model_validator(mode="after")
    def check_error_matches_status(self) -> "RecordingRecord":
        """Only failed recordings carry an error."""
        if self.status is RecordingStatus.FAILED and not self.error:
            self.error = "Unknown error"
        elif self.status is RecordingStatus.COMPLETED:
            self.error = None
        return self

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
