"""
Conversation Session Manager
============================
Lifecycle of chat sessions: creation, lookup, expiry, extension,
completion, deletion, and profile merges into a session.

Concurrency: every read-modify-write on one session runs under that
session's lock; the expired-session sweep holds a collection lock while
it scans. Every save bumps ``version`` and ``updated_at`` so callers can
detect concurrent modification.
"""
import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from core.exceptions import (
    ConflictError,
    SessionInactiveError,
    SessionNotFoundError,
    ValidationError,
    VersionConflictError,
)
from models.candidate import (
    CandidateProfile,
    ChatMessage,
    ConversationSession,
    ConversationStage,
    MergeStrategy,
    MessageMetadata,
    MessageRole,
    ProfileUpdate,
    SessionStatus,
)
from services.job_catalog import JobCatalog
from services.profile_service import merge_profiles
from services.session_store import SessionStore
from services.stage_tracker import stage_index

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = "1.0"

# Fields a caller may change through update_session; status and stage
# move only through set_stage, complete_session and mark_expired
UPDATABLE_FIELDS = {"candidate_profile", "job_context", "expires_at"}


class SessionLookup(str, Enum):
    OK = "ok"
    MISSING = "missing"
    EXPIRED = "expired"
    INVALID = "invalid"


SessionMutator = Callable[[ConversationSession], Any]


class SessionManager:
    """
    Owns session state on top of an injected ``SessionStore``.

    ``clock`` returns naive local datetimes (``datetime.now`` by default)
    and is injectable for tests.
    """

    def __init__(
        self,
        store: SessionStore,
        job_catalog: JobCatalog,
        expiry_hours: int = 7 * 24,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.job_catalog = job_catalog
        self.expiry = timedelta(hours=expiry_hours)
        self.clock = clock
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._collection_lock = threading.Lock()

    # ========================================================================
    # Locking
    # ========================================================================

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.Lock()
            return lock

    @contextmanager
    def session_lock(self, session_id: str) -> Iterator[None]:
        with self._lock_for(session_id):
            yield

    def _forget_lock(self, session_id: str) -> None:
        with self._locks_guard:
            self._locks.pop(session_id, None)

    # ========================================================================
    # Lookup
    # ========================================================================

    def _load(self, session_id: str) -> Tuple[SessionLookup, Optional[ConversationSession]]:
        try:
            session = self.store.get(session_id)
        except ValueError as e:
            logger.warning(f"Unreadable session {session_id}: {e}", extra={"session_id": session_id})
            return SessionLookup.INVALID, None
        if session is None:
            return SessionLookup.MISSING, None
        if session.id != session_id or any(m.session_id != session.id for m in session.messages):
            return SessionLookup.INVALID, session
        if session.is_expired(self.clock()):
            return SessionLookup.EXPIRED, session
        return SessionLookup.OK, session

    def lookup(self, session_id: str) -> SessionLookup:
        return self._load(session_id)[0]

    def get_session(self, session_id: str) -> Optional[ConversationSession]:
        """Valid (present, well-formed, unexpired) session or None"""
        status, session = self._load(session_id)
        return session if status == SessionLookup.OK else None

    def require_session(self, session_id: str) -> ConversationSession:
        status, session = self._load(session_id)
        if status != SessionLookup.OK:
            raise SessionNotFoundError(session_id, reason=status.value)
        return session

    def validate_session(self, session_id: str) -> bool:
        return self.lookup(session_id) == SessionLookup.OK

    def session_exists(self, session_id: str) -> bool:
        return self.lookup(session_id) != SessionLookup.MISSING

    # ========================================================================
    # Mutation
    # ========================================================================

    def _save(self, session: ConversationSession) -> ConversationSession:
        session.version += 1
        session.updated_at = self.clock()
        self.store.save(session)
        return session

    def modify_session(
        self,
        session_id: str,
        mutator: SessionMutator,
        *,
        expected_version: Optional[int] = None,
        require_active: bool = False,
        allow_expired: bool = False,
    ) -> ConversationSession:
        """
        Load, mutate and save one session under its lock.

        ``mutator`` changes the session in place. Raises
        ``SessionNotFoundError`` for missing, invalid or (unless
        ``allow_expired``) expired sessions, ``VersionConflictError`` when
        ``expected_version`` does not match and ``SessionInactiveError``
        when ``require_active`` is set on a completed or expired session.
        """
        with self.session_lock(session_id):
            status, session = self._load(session_id)
            if status == SessionLookup.EXPIRED and allow_expired:
                pass
            elif status != SessionLookup.OK:
                if status in (SessionLookup.MISSING, SessionLookup.INVALID):
                    self._forget_lock(session_id)
                raise SessionNotFoundError(session_id, reason=status.value)

            if expected_version is not None and session.version != expected_version:
                raise VersionConflictError(session_id, expected_version, session.version)
            if require_active and session.status != SessionStatus.ACTIVE:
                raise SessionInactiveError(session_id, session.status.value)

            mutator(session)
            return self._save(session)

    def create_session(
        self,
        seed_profile: Optional[ProfileUpdate] = None,
        job_id: Optional[str] = None,
    ) -> ConversationSession:
        job = self.job_catalog.get(job_id) if job_id else self.job_catalog.default()
        now = self.clock()

        profile = CandidateProfile(last_updated=now)
        if seed_profile is not None and not seed_profile.is_empty():
            profile = merge_profiles(profile, seed_profile, MergeStrategy.REPLACE, now=now)

        session = ConversationSession(
            candidate_profile=profile,
            job_context=job,
            version=1,
            created_at=now,
            updated_at=now,
            expires_at=now + self.expiry,
        )
        self.store.save(session)
        logger.info(f"Created session for job {job.id}", extra={"session_id": session.id})
        return session

    def update_session(
        self,
        session_id: str,
        updates: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> ConversationSession:
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])

        def apply(session: ConversationSession) -> None:
            merged = ConversationSession.model_validate({**session.model_dump(), **updates})
            for key in updates:
                setattr(session, key, getattr(merged, key))

        return self.modify_session(session_id, apply, expected_version=expected_version)

    def append_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        metadata: Optional[MessageMetadata] = None,
    ) -> ChatMessage:
        message = ChatMessage(
            content=content,
            role=role,
            session_id=session_id,
            timestamp=self.clock(),
            metadata=metadata,
        )
        self.modify_session(session_id, lambda s: s.messages.append(message), require_active=True)
        return message

    def merge_profile_into_session(
        self,
        session_id: str,
        update: ProfileUpdate,
        strategy: MergeStrategy = MergeStrategy.MERGE,
        expected_version: Optional[int] = None,
    ) -> CandidateProfile:
        def apply(session: ConversationSession) -> None:
            session.candidate_profile = merge_profiles(
                session.candidate_profile, update, strategy, now=self.clock()
            )

        session = self.modify_session(session_id, apply, expected_version=expected_version)
        return session.candidate_profile

    def set_stage(self, session_id: str, stage: ConversationStage) -> ConversationSession:
        stage = ConversationStage(stage)
        if stage == ConversationStage.COMPLETED:
            raise ValidationError("Use complete_session to finish a conversation", field="stage")

        def apply(session: ConversationSession) -> None:
            if stage_index(stage) < stage_index(session.stage):
                raise ConflictError(
                    f"Stage cannot move from {session.stage.value} back to {stage.value}",
                    error_code="STAGE_REGRESSION",
                    details={"current_stage": session.stage.value, "requested_stage": stage.value},
                )
            session.stage = stage

        return self.modify_session(session_id, apply, require_active=True)

    def reset_conversation(self, session_id: str, keep_profile: bool = False) -> ConversationSession:
        def apply(session: ConversationSession) -> None:
            session.messages = []
            session.stage = ConversationStage.GREETING
            if not keep_profile:
                session.candidate_profile = CandidateProfile(
                    id=session.candidate_profile.id, last_updated=self.clock()
                )

        session = self.modify_session(session_id, apply, require_active=True)
        logger.info("Conversation reset", extra={"session_id": session_id})
        return session

    def extend_session(self, session_id: str, hours: int = 24) -> ConversationSession:
        if hours <= 0:
            raise ValidationError("Extension must be a positive number of hours", field="hours")

        def apply(session: ConversationSession) -> None:
            session.expires_at = session.expires_at + timedelta(hours=hours)

        session = self.modify_session(session_id, apply)
        logger.info(f"Extended session by {hours}h", extra={"session_id": session_id})
        return session

    def complete_session(self, session_id: str) -> ConversationSession:
        def apply(session: ConversationSession) -> None:
            session.status = SessionStatus.COMPLETED
            session.stage = ConversationStage.COMPLETED

        session = self.modify_session(session_id, apply, require_active=True)
        logger.info("Session completed", extra={"session_id": session_id})
        return session

    def mark_expired(self, session_id: str) -> ConversationSession:
        def apply(session: ConversationSession) -> None:
            if session.status == SessionStatus.COMPLETED:
                raise SessionInactiveError(session_id, session.status.value)
            session.status = SessionStatus.EXPIRED
            session.expires_at = min(session.expires_at, self.clock())

        return self.modify_session(session_id, apply, allow_expired=True)

    def delete_session(self, session_id: str) -> bool:
        with self.session_lock(session_id):
            deleted = self.store.delete(session_id)
        self._forget_lock(session_id)
        if deleted:
            logger.info("Session deleted", extra={"session_id": session_id})
        return deleted

    # ========================================================================
    # Collection operations
    # ========================================================================

    def cleanup_expired(self) -> int:
        """Delete every session whose expiry time has passed. Returns the number removed."""
        removed = 0
        with self._collection_lock:
            now = self.clock()
            candidates = [s.id for s in self.store.list_all() if s.is_expired(now)]
            for session_id in candidates:
                with self.session_lock(session_id):
                    current = self.store.get(session_id)
                    if current is None or not current.is_expired(now):
                        continue
                    if self.store.delete(session_id):
                        removed += 1
                self._forget_lock(session_id)
        if removed:
            logger.info(f"Cleaned up {removed} expired session(s)")
        return removed

    def get_active_sessions(self) -> List[ConversationSession]:
        now = self.clock()
        return [
            s for s in self.store.list_all()
            if s.status == SessionStatus.ACTIVE and not s.is_expired(now)
        ]

    def get_all_sessions(self) -> List[ConversationSession]:
        return self.store.list_all()

    def get_statistics(self) -> Dict[str, Any]:
        now = self.clock()
        sessions = self.store.list_all()
        expired = [s for s in sessions if s.status == SessionStatus.EXPIRED or s.is_expired(now)]
        active = [s for s in sessions if s.status == SessionStatus.ACTIVE and not s.is_expired(now)]
        completed = [s for s in sessions if s.status == SessionStatus.COMPLETED]
        durations = [(s.updated_at - s.created_at).total_seconds() for s in sessions]

        return {
            "total": len(sessions),
            "active": len(active),
            "completed": len(completed),
            "expired": len(expired),
            "average_duration_seconds": round(sum(durations) / len(durations), 2) if durations else 0.0,
            "average_messages": round(sum(len(s.messages) for s in sessions) / len(sessions), 2) if sessions else 0.0,
            "oldest_session": min((s.created_at for s in sessions), default=None),
            "newest_session": max((s.created_at for s in sessions), default=None),
        }

    def time_remaining(self, session_id: str) -> timedelta:
        status, session = self._load(session_id)
        if session is None:
            raise SessionNotFoundError(session_id, reason=status.value)
        return max(session.expires_at - self.clock(), timedelta(0))

    # ========================================================================
    # Export / import
    # ========================================================================

    def export_session(self, session_id: str) -> Dict[str, Any]:
        session = self.require_session(session_id)
        return {
            "session": session.model_dump(mode="json"),
            "export_date": self.clock().isoformat(),
            "version": EXPORT_FORMAT_VERSION,
        }

    def import_session(self, data: Union[str, Dict[str, Any]]) -> ConversationSession:
        try:
            payload = json.loads(data) if isinstance(data, str) else data
            session = ConversationSession.model_validate(payload["session"])
        except (ValueError, KeyError, TypeError) as e:
            raise ValidationError(f"Invalid session export: {e}", field="session")

        if session.is_expired(self.clock()):
            raise ValidationError("Imported session has already expired", field="expires_at")
        if any(m.session_id != session.id for m in session.messages):
            raise ValidationError("Imported messages belong to a different session", field="messages")

        with self.session_lock(session.id):
            self.store.save(session)
        logger.info("Session imported", extra={"session_id": session.id})
        return session
