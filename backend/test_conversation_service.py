"""Tests for the per-turn conversation pipeline"""
import asyncio

import pytest

from core.exceptions import (
    ConversationProcessingError,
    LowConfidenceError,
    ProviderAuthError,
    ProviderServerError,
    SessionNotFoundError,
    ValidationError,
    VersionConflictError,
)
from models.candidate import (
    ConversationStage,
    Experience,
    MergeStrategy,
    MessageRole,
    ProfileUpdate,
    SkillEntry,
)
from services.conversation_service import ConversationService, normalize_message
from services.extraction_service import ExtractionEngine
from services.job_catalog import build_default_catalog
from services.llm_gateway import GatewaySettings, LLMGateway
from services.session_manager import SessionManager
from services.session_store import InMemorySessionStore


class FakeProvider:
    name = "fake"

    def __init__(self, reply="Thanks for sharing! What are you working on right now?", error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    async def complete(self, prompt, **params):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply

    async def test_connection(self):
        return True

    async def close(self):
        pass


async def _no_sleep(delay):
    return None


def _service(provider=None, **gateway_settings):
    provider = provider or FakeProvider()
    sessions = SessionManager(InMemorySessionStore(), build_default_catalog())
    gateway = LLMGateway(provider, GatewaySettings(**gateway_settings), sleep=_no_sleep)
    return ConversationService(sessions, ExtractionEngine(), gateway), provider


def test_turn_extracts_profile_and_replies():
    service, provider = _service()
    session = service.sessions.create_session()

    turn = asyncio.run(service.process_message(
        session.id, "Hi, I'm Sarah Johnson, I have 6 years of experience with React and Node.js"
    ))

    assert turn.profile.name == "Sarah Johnson"
    assert turn.profile.experience.years == 6
    assert {"React", "Node.js"} <= {s.name for s in turn.profile.skills}
    assert turn.stage == ConversationStage.GREETING
    assert turn.fallback_used is False
    assert turn.assistant_message.content == provider.reply
    assert turn.assistant_message.metadata.stage == ConversationStage.GREETING
    assert turn.extracted_info["name"] == "Sarah Johnson"
    assert turn.confidence == turn.profile.confidence > 0

    stored = service.sessions.require_session(session.id)
    assert [m.role for m in stored.messages] == [MessageRole.USER, MessageRole.ASSISTANT]


def test_stage_advances_with_messages_and_profile():
    service, provider = _service()
    session = service.sessions.create_session()

    asyncio.run(service.process_message(session.id, "Hi, I'm Sarah Johnson, 6 years of experience with React"))
    second = asyncio.run(service.process_message(session.id, "My email is sarah.j@example.com"))
    assert second.previous_stage == ConversationStage.GREETING
    assert second.stage == ConversationStage.INFORMATION_GATHERING

    third = asyncio.run(service.process_message(session.id, "I'd like around $150k"))
    assert third.stage == ConversationStage.QUALIFICATION_ASSESSMENT
    assert third.profile.email == "sarah.j@example.com"
    assert third.profile.salary.expected == 150000


def test_prompt_carries_history_and_current_message():
    service, provider = _service()
    session = service.sessions.create_session()

    asyncio.run(service.process_message(session.id, "Hello there"))
    asyncio.run(service.process_message(session.id, "I work with Django"))

    prompt = provider.prompts[-1]
    assert "User: Hello there" in prompt
    assert f"Assistant: {provider.reply}" in prompt
    assert prompt.count("User: I work with Django") == 1
    assert "- Skills: Django (Intermediate)" in prompt


def test_provider_failure_uses_fallback_reply():
    service, provider = _service(FakeProvider(error=ProviderServerError("down")), max_attempts=2)
    session = service.sessions.create_session()

    turn = asyncio.run(service.process_message(session.id, "Hello"))

    assert turn.fallback_used is True
    assert turn.assistant_message.metadata.fallback is True
    assert len(provider.prompts) == 2
    assert service.conversation_metrics(session.id)["fallback_responses"] == 1


def test_fatal_provider_error_is_reported_when_propagating():
    service, _ = _service(FakeProvider(error=ProviderAuthError("bad key")), propagate_fatal_errors=True)
    session = service.sessions.create_session()

    with pytest.raises(ConversationProcessingError):
        asyncio.run(service.process_message(session.id, "Hello"))


def test_invalid_input():
    service, _ = _service()
    with pytest.raises(ValidationError):
        normalize_message("   \n ")
    with pytest.raises(ValidationError):
        normalize_message("x" * 2001)
    assert normalize_message("  hello   world ") == "hello world"

    with pytest.raises(SessionNotFoundError):
        asyncio.run(service.process_message("missing-session", "Hello"))


def test_update_profile_merges_and_reports_changes():
    service, _ = _service()
    session = service.sessions.create_session()

    result = service.update_profile(session.id, ProfileUpdate(name="Sam Lee", experience=Experience(years=3)))
    assert result.profile.name == "Sam Lee"
    assert {c["field"] for c in result.changes} == {"name", "experience"}
    assert result.confidence == result.profile.confidence

    result = service.update_profile(session.id, ProfileUpdate(experience=Experience(years=1)), MergeStrategy.MERGE)
    assert result.profile.experience.years == 3
    assert result.changes == []


def test_update_profile_rejections_leave_profile_untouched():
    service, _ = _service()
    session = service.sessions.create_session()

    with pytest.raises(ValidationError):
        service.update_profile(session.id, ProfileUpdate(email="broken"))
    with pytest.raises(ValidationError):
        service.update_profile(session.id, ProfileUpdate())
    with pytest.raises(LowConfidenceError):
        service.update_profile(session.id, ProfileUpdate(name="Sam Lee"), confidence_threshold=0.9)
    with pytest.raises(VersionConflictError):
        service.update_profile(session.id, ProfileUpdate(name="Sam Lee"), expected_version=99)

    stored = service.sessions.require_session(session.id)
    assert stored.candidate_profile.name is None
    assert stored.version == 1


def test_analysis_and_metrics():
    service, _ = _service()
    session = service.sessions.create_session()
    service.update_profile(session.id, ProfileUpdate(
        name="Sarah Johnson",
        experience=Experience(years=6),
        skills=[SkillEntry(name="React"), SkillEntry(name="Node.js")],
    ))
    asyncio.run(service.process_message(session.id, "Hello"))

    analysis = service.analyze_conversation(session.id)
    assert analysis["candidate_fit"] >= 25
    assert "Strong experience (6 years)" in analysis["strengths"]
    assert "Matching skills: React, Node.js" in analysis["strengths"]
    assert "Missing skill: Python" in analysis["qualification_gaps"]
    assert analysis["recommended_actions"]

    metrics = service.conversation_metrics(session.id)
    assert metrics["total_messages"] == 2
    assert metrics["user_messages"] == 1
    assert metrics["assistant_messages"] == 1
    assert metrics["fallback_responses"] == 0
    assert 0 < metrics["information_extraction_rate"] <= 100


def test_education_over_several_turns_is_one_entry():
    service, _ = _service()
    session = service.sessions.create_session()

    asyncio.run(service.process_message(session.id, "I have a bachelor's degree in computer science"))
    turn = asyncio.run(service.process_message(session.id, "I studied at Stanford University"))

    assert len(turn.profile.education) == 1
    assert turn.profile.education[0].degree == "Bachelor's in Computer Science"
    assert turn.profile.education[0].institution == "Stanford University"
