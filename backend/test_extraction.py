"""Tests for rule-based candidate extraction"""
import re

from models.candidate import ChatMessage, MessageRole, Schedule, SkillLevel
from services.extraction_service import ExtractionEngine, ExtractionRule


def _messages(*texts, role=MessageRole.USER):
    return [ChatMessage(content=t, role=role, session_id="s-1") for t in texts]


def test_extracts_name_experience_and_skills():
    engine = ExtractionEngine()
    result = engine.extract("Hi, I'm Sarah Johnson, I have 6 years of experience with React and Node.js")

    profile = result.profile
    assert profile.name == "Sarah Johnson"
    assert profile.experience.years == 6
    skill_names = {s.name for s in profile.skills}
    assert {"React", "Node.js"} <= skill_names
    assert 0.0 < result.confidence <= 1.0
    assert "name" in result.matched_fields


def test_extracts_email():
    result = ExtractionEngine().extract("My email is sarah.j@example.com")
    assert result.profile.email == "sarah.j@example.com"


def test_phone_is_normalized():
    result = ExtractionEngine().extract("You can reach me at 555.123.4567 any time")
    assert result.profile.phone == "(555) 123-4567"


def test_single_first_name():
    result = ExtractionEngine().extract("hello, my name is priya")
    assert result.profile.name == "Priya"


def test_adjectives_are_not_names():
    result = ExtractionEngine().extract("I'm really excited about this role")
    assert result.profile.name is None


def test_salary_forms():
    engine = ExtractionEngine()
    assert engine.extract("I'm looking for $120,000 a year").profile.salary.expected == 120000
    assert engine.extract("expecting around 95k").profile.salary.expected == 95000

    euro = engine.extract("My target is €70k, but it's negotiable").profile.salary
    assert euro.expected == 70000
    assert euro.currency == "EUR"
    assert euro.negotiable is True


def test_implausible_salary_is_ignored():
    result = ExtractionEngine().extract("I have $5 in my pocket")
    assert result.profile.salary is None


def test_location_and_relocation():
    result = ExtractionEngine().extract("I'm based in Austin and I'm willing to relocate to Seattle")
    location = result.profile.location
    assert location.current == "Austin"
    assert location.willing_to_relocate is True
    assert location.preferred_locations == ["Seattle"]


def test_availability():
    engine = ExtractionEngine()
    assert engine.extract("I need to give two weeks notice").profile.availability.notice_period == 14
    assert engine.extract("I can start immediately").profile.availability.notice_period == 0
    assert engine.extract("Looking for full-time work").profile.availability.preferred_schedule == Schedule.FULL_TIME


def test_education():
    result = ExtractionEngine().extract(
        "I have a Bachelor's degree in Computer Science from Stanford University, graduated in 2018"
    )
    education = result.profile.education
    assert len(education) == 1
    assert education[0].degree == "Bachelor's in Computer Science"
    assert education[0].institution == "Stanford University"
    assert education[0].graduation_year == 2018


def test_months_of_experience():
    result = ExtractionEngine().extract("I have 18 months of professional experience")
    assert result.profile.experience.years == 1
    assert result.profile.experience.months == 6


def test_hedged_skills_get_lower_confidence():
    engine = ExtractionEngine()
    confident = engine.extract("I built production services with Python").profile.skills[0]
    hedged = engine.extract("I'm interested in Python").profile.skills
    # hedged mentions are either dropped or scored below confident ones
    assert all(s.confidence < confident.confidence for s in hedged)
    assert all(s.level == SkillLevel.BEGINNER for s in hedged)


def test_skill_keywords_need_word_boundaries():
    result = ExtractionEngine().extract("I enjoy javascripting and gitops talks")
    names = {s.name for s in result.profile.skills or []}
    assert "Git" not in names
    assert "JavaScript" not in names


def test_interests_need_a_cue():
    engine = ExtractionEngine()
    assert engine.extract("I'm passionate about machine learning").profile.interests == ["Machine Learning"]
    assert engine.extract("We migrated the cloud backend last year").profile.interests is None


def test_only_user_messages_are_scanned():
    messages = _messages("Tell me your email please", role=MessageRole.ASSISTANT)
    messages += _messages("Sure, it is dev@example.org")
    messages.append(ChatMessage(content="Thanks! Is recruiter@company.com ok for questions?",
                                role=MessageRole.ASSISTANT, session_id="s-1"))

    result = ExtractionEngine().extract(messages)
    assert result.profile.email == "dev@example.org"


def test_extraction_is_deterministic():
    engine = ExtractionEngine()
    text = "I'm Ana Lopez, 4 years of experience with Django and PostgreSQL, based in Denver"
    first = engine.extract(text)
    second = engine.extract(text)
    assert first.profile.model_dump() == second.profile.model_dump()
    assert first.confidence == second.confidence


def test_empty_input_gives_empty_result():
    result = ExtractionEngine().extract("   ")
    assert result.is_empty()
    assert result.confidence == 0.0


def test_failing_rule_never_raises():
    def explode(match):
        raise RuntimeError("broken transform")

    engine = ExtractionEngine()
    engine.add_rule(ExtractionRule("email", re.compile(r"@"), explode), first=True)

    result = engine.extract("mail me at someone@example.com")
    assert result.is_empty()
    assert engine.stats()["failures"] == 1


def test_custom_rule_and_skill():
    engine = ExtractionEngine()
    engine.add_skill("htmx", "HTMX")
    engine.add_rule(
        ExtractionRule("name", re.compile(r"signed,\s+([a-z]+\s+[a-z]+)", re.I),
                       lambda m: m.group(1).title(), base_confidence=0.6),
    )

    result = engine.extract("I ship HTMX frontends. Signed, jo kim")
    assert "HTMX" in {s.name for s in result.profile.skills}
    assert result.profile.name == "Jo Kim"


def test_phrases_ending_a_message_survive_later_messages():
    result = ExtractionEngine().extract(_messages(
        "I live in Tucson",
        "I have a bachelor's degree in computer science",
        "I'm willing to relocate to Denver",
        "I have 4 years of experience",
    ))
    profile = result.profile
    assert profile.location.current == "Tucson"
    assert profile.location.preferred_locations == ["Denver"]
    assert profile.education[0].degree == "Bachelor's in Computer Science"
    assert profile.experience.years == 4


def test_phrase_at_line_end_inside_one_text():
    result = ExtractionEngine().extract("I live in Tucson\nI have 4 years of experience")
    assert result.profile.location.current == "Tucson"


def test_verbs_are_not_degrees_or_start_dates():
    engine = ExtractionEngine()
    assert engine.extract("I want to master Kubernetes").profile.education is None
    assert engine.extract("Right now I'm working at Acme").profile.availability is None
    assert engine.extract("I hold a master's in data science").profile.education[0].degree == "Master's in Data Science"
    assert engine.extract("I can start right now").profile.availability.notice_period == 0
