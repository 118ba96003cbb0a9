"""Recording metadata storage, newest records kept up to a retention cap."""

import time
from collections import OrderedDict
from typing import Protocol

from app.models.recording.records import RecordingRecord
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


class RecordingStore(Protocol):
    """Append-only store of recording metadata."""

    async def save(self, record: RecordingRecord) -> RecordingRecord: ...

    async def get_by_id(self, record_id: str) -> RecordingRecord | None: ...

    async def get_by_session(self, session_id: str) -> list[RecordingRecord]: ...

    async def get_all(self) -> list[RecordingRecord]: ...

    async def delete(self, record_id: str) -> bool: ...


class InMemoryRecordingStore:
    """A simple in-memory store for recording metadata, in insertion order."""

    def __init__(self, retention_limit: int | None = None) -> None:
        self._records: OrderedDict[str, RecordingRecord] = OrderedDict()
        self._retention_limit = retention_limit

    def _new_id(self, session_id: str) -> str:
        record_id = f"{session_id}-{int(time.time() * 1000)}"
        suffix = 1
        candidate = record_id
        while candidate in self._records:
            candidate = f"{record_id}-{suffix}"
            suffix += 1
        return candidate

    async def save(self, record: RecordingRecord) -> RecordingRecord:
        """Assign an id and store the record."""
        record.id = self._new_id(record.session_id)
        self._records[record.id] = record

        if self._retention_limit and len(self._records) > self._retention_limit:
            evicted_id, _ = self._records.popitem(last=False)
            logger.info("Evicted oldest recording", extra={"recording_id": evicted_id})

        logger.debug(
            "Saved recording",
            extra={
                "recording_id": record.id,
                "session_id": record.session_id,
                "job_id": record.job_id,
            },
        )
        return record

    async def get_by_id(self, record_id: str) -> RecordingRecord | None:
        return self._records.get(record_id)

    async def get_by_session(self, session_id: str) -> list[RecordingRecord]:
        return [r for r in self._records.values() if r.session_id == session_id]

    async def get_all(self) -> list[RecordingRecord]:
        return list(self._records.values())

    async def delete(self, record_id: str) -> bool:
        """Administrative removal of a record."""
        if self._records.pop(record_id, None) is None:
            return False
        logger.info("Deleted recording", extra={"recording_id": record_id})
        return True
