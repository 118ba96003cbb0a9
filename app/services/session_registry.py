"""Session registry.

Sessions are kept behind a ``SessionStore`` so the registry logic does not
care whether state lives in process memory or in an external key-value
store. Recording state transitions happen under a per-session lock, which
guarantees at most one in-flight recording job per session.
"""

import asyncio
import secrets
from collections import defaultdict
from datetime import UTC, datetime, timedelta
from typing import Protocol

from app.config import SessionSettings
from app.core.errors import NotFound, PreconditionFailed
from app.models.session import RecordingState, Session
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


class SessionStore(Protocol):
    """Storage backend for sessions and the job -> session index."""

    async def get(self, session_id: str) -> Session | None: ...

    async def save(self, session: Session) -> None: ...

    async def delete(self, session_id: str) -> None: ...

    async def list(self) -> list[Session]: ...

    async def index_job(self, job_id: str, session_id: str) -> None: ...

    async def unindex_job(self, job_id: str) -> None: ...

    async def session_id_for_job(self, job_id: str) -> str | None: ...


class InMemorySessionStore:
    """Single process session store, lost on restart."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._jobs: dict[str, str] = {}  # job_id -> session_id

    async def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    async def save(self, session: Session) -> None:
        self._sessions[session.session_id] = session

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def list(self) -> list[Session]:
        return list(self._sessions.values())

    async def index_job(self, job_id: str, session_id: str) -> None:
        self._jobs[job_id] = session_id

    async def unindex_job(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    async def session_id_for_job(self, job_id: str) -> str | None:
        return self._jobs.get(job_id)


class SessionRegistry:
    """Owns session lifecycle and recording flags."""

    def __init__(
        self,
        store: SessionStore | None = None,
        settings: SessionSettings | None = None,
    ) -> None:
        self._store = store if store is not None else InMemorySessionStore()
        self._settings = settings or SessionSettings()
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._create_lock = asyncio.Lock()

    def generate_session_id(self) -> str:
        return "".join(
            secrets.choice(self._settings.id_chars)
            for _ in range(self._settings.id_length)
        )

    async def create_session(self, creator_identity: str | None = None) -> Session:
        """Create a session with a fresh, unused identifier."""
        async with self._create_lock:
            session_id = self.generate_session_id()
            while await self._store.get(session_id) is not None:
                session_id = self.generate_session_id()
            session = Session(session_id=session_id, creator_identity=creator_identity)
            await self._store.save(session)

        logger.info(
            "Created session",
            extra={"session_id": session_id, "creator_identity": creator_identity},
        )
        return session

    async def get_session(self, session_id: str) -> Session | None:
        return await self._store.get(session_id)

    async def require_session(self, session_id: str) -> Session:
        session = await self._store.get(session_id)
        if session is None:
            raise NotFound(f"Session {session_id} not found")
        return session

    async def create_or_get_session(
        self, session_id: str, identity: str | None = None
    ) -> Session:
        """Return the session, creating it under the given id when unknown."""
        async with self._create_lock:
            session = await self._store.get(session_id)
            if session is not None:
                return session
            session = Session(session_id=session_id, creator_identity=identity)
            await self._store.save(session)

        logger.info(
            "Auto-created session",
            extra={"session_id": session_id, "creator_identity": identity},
        )
        return session

    async def list_sessions(self) -> list[Session]:
        return await self._store.list()

    async def delete_session(self, session_id: str) -> None:
        async with self._locks[session_id]:
            session = await self._store.get(session_id)
            if session is None:
                return
            if session.recording_job_id:
                await self._store.unindex_job(session.recording_job_id)
            await self._store.delete(session_id)
        self._locks.pop(session_id, None)
        logger.info("Deleted session", extra={"session_id": session_id})

    async def add_participant(self, session_id: str, identity: str) -> Session:
        async with self._locks[session_id]:
            session = await self.require_session(session_id)
            if identity not in session.participants:
                session.participants.add(identity)
                await self._store.save(session)
                logger.info(
                    "Added participant",
                    extra={"session_id": session_id, "identity": identity},
                )
        return session

    async def remove_participant(self, session_id: str, identity: str) -> Session:
        async with self._locks[session_id]:
            session = await self.require_session(session_id)
            if identity in session.participants:
                session.participants.discard(identity)
                await self._store.save(session)
                logger.info(
                    "Removed participant",
                    extra={"session_id": session_id, "identity": identity},
                )
        return session

    async def get_participant_count(self, session_id: str) -> int:
        session = await self._store.get(session_id)
        return session.participant_count if session else 0

    async def claim_creator(self, session_id: str, identity: str) -> bool:
        """Make ``identity`` the creator if the session has none yet."""
        async with self._locks[session_id]:
            session = await self.require_session(session_id)
            if session.creator_identity is None:
                session.creator_identity = identity
                await self._store.save(session)
                logger.info(
                    "Assigned session creator",
                    extra={"session_id": session_id, "identity": identity},
                )
            return session.creator_identity == identity

    async def is_creator(self, session_id: str, identity: str | None) -> bool:
        session = await self._store.get(session_id)
        if session is None or not identity:
            return False
        return session.creator_identity == identity

    async def begin_recording(self, session_id: str) -> Session:
        """Atomically move an idle session into the starting state."""
        async with self._locks[session_id]:
            session = await self.require_session(session_id)
            if session.recording_state is not RecordingState.IDLE or session.is_recording:
                raise PreconditionFailed("Recording is already in progress")
            session.recording_state = RecordingState.STARTING
            await self._store.save(session)
        return session

    async def abort_recording(self, session_id: str) -> None:
        """Return a session whose start attempt failed to idle."""
        async with self._locks[session_id]:
            session = await self._store.get(session_id)
            if session is None or session.recording_state is not RecordingState.STARTING:
                return
            if session.recording_job_id is None:
                session.recording_state = RecordingState.IDLE
                await self._store.save(session)

    async def set_recording(self, session_id: str, job_id: str) -> Session:
        async with self._locks[session_id]:
            session = await self.require_session(session_id)
            previous = session.recording_job_id
            if previous and previous != job_id:
                logger.warning(
                    "Replacing in-flight recording job",
                    extra={
                        "session_id": session_id,
                        "previous_job_id": previous,
                        "job_id": job_id,
                    },
                )
                await self._store.unindex_job(previous)

            session.recording_job_id = job_id
            session.recording_started_at = datetime.now(UTC)
            session.recording_state = RecordingState.ACTIVE
            await self._store.index_job(job_id, session_id)
            await self._store.save(session)

        logger.info(
            "Recording started",
            extra={"session_id": session_id, "job_id": job_id},
        )
        return session

    async def mark_stopping(self, session_id: str, job_id: str) -> None:
        async with self._locks[session_id]:
            session = await self._store.get(session_id)
            if session is None or session.recording_job_id != job_id:
                return
            if session.recording_state in (RecordingState.STARTING, RecordingState.ACTIVE):
                session.recording_state = RecordingState.STOPPING
                await self._store.save(session)

    async def clear_recording(self, session_id: str) -> None:
        async with self._locks[session_id]:
            session = await self._store.get(session_id)
            if session is None:
                logger.warning(
                    "Session not found when clearing recording",
                    extra={"session_id": session_id},
                )
                return
            if session.recording_job_id:
                await self._store.unindex_job(session.recording_job_id)
            session.recording_job_id = None
            session.recording_state = RecordingState.IDLE
            await self._store.save(session)

        logger.info("Recording cleared", extra={"session_id": session_id})

    async def find_by_job(self, job_id: str) -> Session | None:
        session_id = await self._store.session_id_for_job(job_id)
        if session_id is None:
            return None
        return await self._store.get(session_id)

    async def sweep_expired(self, now: datetime | None = None) -> list[str]:
        """Drop idle, empty sessions older than the configured TTL."""
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(seconds=self._settings.ttl_seconds)
        expired = [
            session.session_id
            for session in await self._store.list()
            if session.created_at < cutoff
            and not session.participants
            and not session.is_recording
            and session.recording_state is RecordingState.IDLE
        ]
        for session_id in expired:
            await self.delete_session(session_id)

        if expired:
            logger.info(
                "Swept expired sessions",
                extra={"removed_count": len(expired)},
            )
        return expired

    async def run_sweeper(self, run_once: bool = False) -> None:
        """Periodically apply the retention policy.

        Args:
            run_once: If True, sweep once and return (for testing)
        """
        while True:
            try:
                if not run_once:
                    await asyncio.sleep(self._settings.sweep_interval)
                await self.sweep_expired()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error sweeping sessions", extra={"error": str(e)})
            if run_once:
                break
