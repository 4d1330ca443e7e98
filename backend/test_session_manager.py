"""Tests for session lifecycle, persistence and cleanup"""
import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest

from core.exceptions import (
    ConflictError,
    JobNotFoundError,
    SessionInactiveError,
    SessionNotFoundError,
    ValidationError,
    VersionConflictError,
)
from models.candidate import (
    ChatMessage,
    ConversationStage,
    Experience,
    MessageRole,
    ProfileUpdate,
    SessionStatus,
)
from services.job_catalog import build_default_catalog
from services.session_manager import SessionLookup, SessionManager
from services.session_store import InMemorySessionStore, JsonFileSessionStore


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 1, 9, 0, 0))


@pytest.fixture
def manager(clock):
    return SessionManager(InMemorySessionStore(), build_default_catalog(), clock=clock)


def test_new_session_defaults(manager, clock):
    session = manager.create_session()

    assert session.status == SessionStatus.ACTIVE
    assert session.stage == ConversationStage.GREETING
    assert session.messages == []
    assert session.candidate_profile.confidence == 0.0
    assert session.expires_at == clock.now + timedelta(days=7)
    assert session.version == 1
    assert session.job_context.id == "se-2024-001"
    assert manager.validate_session(session.id)


def test_create_with_job_and_seed_profile(manager):
    session = manager.create_session(seed_profile=ProfileUpdate(name="Sam Lee"), job_id="fe-2024-002")
    assert session.job_context.title == "Frontend Developer"
    assert session.candidate_profile.name == "Sam Lee"
    assert session.candidate_profile.confidence > 0

    with pytest.raises(JobNotFoundError):
        manager.create_session(job_id="nope")


def test_cleanup_removes_only_expired_sessions(manager, clock):
    sessions = [manager.create_session() for _ in range(5)]
    for session in sessions[:2]:
        stale = manager.store.get(session.id)
        stale.expires_at = clock.now - timedelta(minutes=1)
        manager.store.save(stale)

    assert manager.cleanup_expired() == 2

    remaining = {s.id for s in manager.get_all_sessions()}
    assert remaining == {s.id for s in sessions[2:]}
    assert manager.cleanup_expired() == 0


def test_expired_sessions_are_not_returned(manager, clock):
    session = manager.create_session()
    clock.advance(days=7, seconds=1)

    assert manager.lookup(session.id) == SessionLookup.EXPIRED
    assert manager.get_session(session.id) is None
    assert manager.session_exists(session.id)
    with pytest.raises(SessionNotFoundError):
        manager.require_session(session.id)
    with pytest.raises(SessionNotFoundError):
        manager.append_message(session.id, MessageRole.USER, "hello?")


def test_missing_and_invalid_sessions(manager):
    assert manager.lookup("does-not-exist") == SessionLookup.MISSING

    session = manager.create_session()
    tampered = manager.store.get(session.id)
    tampered.messages.append(ChatMessage(content="hi", role=MessageRole.USER, session_id="someone-else"))
    manager.store.save(tampered)
    assert manager.lookup(session.id) == SessionLookup.INVALID


def test_update_bumps_version_and_detects_conflicts(manager):
    session = manager.create_session()
    later = session.expires_at + timedelta(hours=2)

    updated = manager.update_session(session.id, {"expires_at": later}, expected_version=1)
    assert updated.version == 2
    assert updated.expires_at == later

    with pytest.raises(VersionConflictError):
        manager.update_session(session.id, {"expires_at": later}, expected_version=1)

    with pytest.raises(ValidationError):
        manager.update_session(session.id, {"id": "new-id"})


def test_update_cannot_reopen_or_rewind_a_session(manager):
    session = manager.create_session()
    manager.complete_session(session.id)

    with pytest.raises(ValidationError):
        manager.update_session(session.id, {"status": "active", "stage": "greeting"})
    with pytest.raises(ValidationError):
        manager.update_session(session.id, {"stage": "greeting"})

    stored = manager.require_session(session.id)
    assert stored.status == SessionStatus.COMPLETED
    assert stored.stage == ConversationStage.COMPLETED


def test_missing_ids_do_not_leave_locks_behind(manager):
    for i in range(50):
        with pytest.raises(SessionNotFoundError):
            manager.extend_session(f"missing-{i}")
        with pytest.raises(SessionNotFoundError):
            manager.append_message(f"missing-{i}", MessageRole.USER, "hello")
    assert manager._locks == {}

    session = manager.create_session()
    manager.extend_session(session.id)
    assert list(manager._locks) == [session.id]


def test_append_message_and_merge_profile(manager):
    session = manager.create_session()
    message = manager.append_message(session.id, MessageRole.USER, "I have 3 years of experience")
    manager.merge_profile_into_session(session.id, ProfileUpdate(experience=Experience(years=3)))
    profile = manager.merge_profile_into_session(session.id, ProfileUpdate(experience=Experience(years=5)))

    stored = manager.require_session(session.id)
    assert stored.messages == [message]
    assert message.session_id == session.id
    assert profile.experience.years == 5
    assert stored.version == 4


def test_stage_cannot_regress(manager):
    session = manager.create_session()
    manager.set_stage(session.id, ConversationStage.QUALIFICATION_ASSESSMENT)

    with pytest.raises(ConflictError):
        manager.set_stage(session.id, ConversationStage.GREETING)
    with pytest.raises(ValidationError):
        manager.set_stage(session.id, ConversationStage.COMPLETED)


def test_completed_sessions_reject_messages(manager):
    session = manager.create_session()
    completed = manager.complete_session(session.id)
    assert completed.status == SessionStatus.COMPLETED
    assert completed.stage == ConversationStage.COMPLETED

    with pytest.raises(SessionInactiveError):
        manager.append_message(session.id, MessageRole.USER, "one more thing")


def test_reset_conversation(manager):
    session = manager.create_session(seed_profile=ProfileUpdate(name="Sam Lee"))
    manager.append_message(session.id, MessageRole.USER, "hello")
    manager.set_stage(session.id, ConversationStage.INFORMATION_GATHERING)

    kept = manager.reset_conversation(session.id, keep_profile=True)
    assert kept.messages == []
    assert kept.stage == ConversationStage.GREETING
    assert kept.candidate_profile.name == "Sam Lee"

    cleared = manager.reset_conversation(session.id)
    assert cleared.candidate_profile.name is None
    assert cleared.candidate_profile.id == session.candidate_profile.id


def test_extend_and_mark_expired(manager, clock):
    session = manager.create_session()
    extended = manager.extend_session(session.id, hours=24)
    assert extended.expires_at == session.expires_at + timedelta(hours=24)

    with pytest.raises(ValidationError):
        manager.extend_session(session.id, hours=0)

    expired = manager.mark_expired(session.id)
    assert expired.status == SessionStatus.EXPIRED
    assert manager.lookup(session.id) == SessionLookup.EXPIRED
    assert manager.cleanup_expired() == 1


def test_concurrent_appends_are_serialized(manager):
    session = manager.create_session()

    def send(i):
        manager.append_message(session.id, MessageRole.USER, f"message {i}")

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(send, range(20)))

    stored = manager.require_session(session.id)
    assert len(stored.messages) == 20
    assert stored.version == 21


def test_statistics(manager):
    first = manager.create_session()
    manager.create_session()
    manager.complete_session(first.id)

    stats = manager.get_statistics()
    assert stats["total"] == 2
    assert stats["active"] == 1
    assert stats["completed"] == 1
    assert len(manager.get_active_sessions()) == 1


def test_export_and_import(manager):
    session = manager.create_session(seed_profile=ProfileUpdate(name="Sam Lee"))
    manager.append_message(session.id, MessageRole.USER, "hello")
    exported = manager.export_session(session.id)
    assert exported["version"] == "1.0"

    manager.delete_session(session.id)
    assert manager.lookup(session.id) == SessionLookup.MISSING

    restored = manager.import_session(json.dumps(exported))
    assert restored.id == session.id
    assert restored.candidate_profile.name == "Sam Lee"
    assert len(manager.require_session(session.id).messages) == 1

    with pytest.raises(ValidationError):
        manager.import_session({"not": "an export"})


def test_import_rejects_expired_session(manager, clock):
    session = manager.create_session()
    exported = manager.export_session(session.id)
    clock.advance(days=8)

    with pytest.raises(ValidationError):
        manager.import_session(exported)


def test_json_store_persists_sessions(tmp_path, clock):
    path = str(tmp_path / "data" / "sessions.json")
    manager = SessionManager(JsonFileSessionStore(path), build_default_catalog(), clock=clock)
    session = manager.create_session()
    manager.append_message(session.id, MessageRole.USER, "persist me")

    reopened = SessionManager(JsonFileSessionStore(path), build_default_catalog(), clock=clock)
    stored = reopened.require_session(session.id)
    assert stored.messages[0].content == "persist me"
    assert reopened.delete_session(session.id)
    assert reopened.get_all_sessions() == []


def test_json_store_tolerates_corrupt_file(tmp_path):
    path = tmp_path / "sessions.json"
    path.write_text("{not json")

    store = JsonFileSessionStore(str(path))
    assert store.list_all() == []
    assert store.get("anything") is None
