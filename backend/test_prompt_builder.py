"""Tests for prompt assembly"""
from models.candidate import (
    CandidateProfile,
    ChatMessage,
    ConversationStage,
    Experience,
    MessageRole,
    SkillEntry,
)
from services.job_catalog import SENIOR_SOFTWARE_ENGINEER
from services.prompt_builder import (
    CLOSING_DIRECTIVE,
    EMPTY_HISTORY,
    PromptBuilder,
    build_prompt,
    render_profile,
    stage_follow_up_questions,
)

JOB = SENIOR_SOFTWARE_ENGINEER


def _history(count: int, length: int = 40):
    roles = [MessageRole.USER, MessageRole.ASSISTANT]
    return [
        ChatMessage(content=f"message-{i:03d} " + "x" * length, role=roles[i % 2], session_id="s-1")
        for i in range(count)
    ]


def test_prompt_contains_all_sections():
    profile = CandidateProfile(name="Sarah Johnson", experience=Experience(years=6),
                               skills=[SkillEntry(name="React")])
    prompt = build_prompt("I love frontend work", JOB, profile, [], ConversationStage.GREETING)

    assert "Senior Software Engineer at TechFlow Solutions" in prompt
    assert "- Title: Senior Software Engineer" in prompt
    assert "Current stage: greeting" in prompt
    assert EMPTY_HISTORY in prompt
    assert "- Name: Sarah Johnson" in prompt
    assert "- Experience: 6 years, 0 months" in prompt
    assert "React (Intermediate)" in prompt
    assert "User: I love frontend work" in prompt
    assert prompt.endswith(CLOSING_DIRECTIVE)


def test_missing_profile_fields_render_as_not_specified():
    rendered = render_profile(CandidateProfile())
    assert "- Email: Not specified" in rendered
    assert "- Salary expectation: Not specified" in rendered


def test_history_is_limited_to_recent_messages():
    history = _history(10)
    prompt = build_prompt("hello", JOB, CandidateProfile(), history, ConversationStage.INFORMATION_GATHERING,
                          history_limit=4)
    assert "message-005" not in prompt
    for i in range(6, 10):
        assert f"message-{i:03d}" in prompt
    assert "Assistant: message-009" in prompt


def test_prompt_respects_size_limit():
    history = _history(12, length=400)
    prompt = build_prompt("What does the team work on?", JOB, CandidateProfile(), history,
                          ConversationStage.QUALIFICATION_ASSESSMENT, max_chars=2500)

    assert len(prompt) <= 2500
    assert "User: What does the team work on?" in prompt
    assert prompt.endswith(CLOSING_DIRECTIVE)


def test_oldest_history_dropped_first():
    history = _history(6, length=300)
    full = build_prompt("next", JOB, CandidateProfile(), history, ConversationStage.GREETING, max_chars=100000)
    limit = len(full) - 200
    trimmed = build_prompt("next", JOB, CandidateProfile(), history, ConversationStage.GREETING, max_chars=limit)

    assert len(trimmed) <= limit
    assert "message-000" not in trimmed
    assert "message-005" in trimmed


def test_builder_uses_its_limits():
    builder = PromptBuilder(history_limit=1)
    prompt = builder.build("hi", JOB, CandidateProfile(), _history(3), ConversationStage.GREETING)
    assert "message-002" in prompt
    assert "message-001" not in prompt


def test_follow_up_questions_per_stage():
    assert "What are your salary expectations?" in stage_follow_up_questions(ConversationStage.SALARY_NEGOTIATION)
    assert stage_follow_up_questions(ConversationStage.COMPLETED)
