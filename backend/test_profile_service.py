"""Tests for profile merging, confidence scoring and validation"""
from datetime import datetime

import pytest

from models.candidate import (
    Availability,
    CandidateProfile,
    EducationEntry,
    Experience,
    LocationPreference,
    MergeStrategy,
    ProfileUpdate,
    SalaryExpectation,
    SkillEntry,
)
from services.job_catalog import BACKEND_DEVELOPER
from services.profile_service import (
    analyze_profile_fit,
    compute_profile_confidence,
    format_profile,
    is_valid_phone,
    merge_profiles,
    profile_changes,
    validate_profile,
)

NOW = datetime(2024, 6, 1, 12, 0, 0)


def _profile(**fields) -> CandidateProfile:
    return merge_profiles(CandidateProfile(), ProfileUpdate(**fields), MergeStrategy.REPLACE, now=NOW)


def test_merge_keeps_larger_experience():
    existing = _profile(experience=Experience(years=3))
    merged = merge_profiles(existing, ProfileUpdate(experience=Experience(years=5)), MergeStrategy.MERGE)
    assert merged.experience.years == 5

    merged = merge_profiles(merged, ProfileUpdate(experience=Experience(years=2)), MergeStrategy.MERGE)
    assert merged.experience.years == 5


def test_merge_fills_identity_only_when_empty():
    existing = _profile(name="Sarah Johnson")
    merged = merge_profiles(existing, ProfileUpdate(name="Sara", email="s@example.com"))
    assert merged.name == "Sarah Johnson"
    assert merged.email == "s@example.com"


def test_replace_overwrites():
    existing = _profile(name="Sarah Johnson", experience=Experience(years=8))
    replaced = merge_profiles(existing, ProfileUpdate(name="Sam", experience=Experience(years=2)), MergeStrategy.REPLACE)
    assert replaced.name == "Sam"
    assert replaced.experience.years == 2


def test_skills_union_keeps_higher_confidence():
    existing = _profile(skills=[SkillEntry(name="React", confidence=0.6), SkillEntry(name="SQL", confidence=0.9)])
    update = ProfileUpdate(skills=[SkillEntry(name="react", confidence=0.8), SkillEntry(name="sql", confidence=0.4),
                                   SkillEntry(name="Docker", confidence=0.7)])
    merged = merge_profiles(existing, update)

    by_name = {s.name.lower(): s for s in merged.skills}
    assert set(by_name) == {"react", "sql", "docker"}
    assert by_name["react"].confidence == 0.8
    assert by_name["sql"].confidence == 0.9


def test_append_concatenates_lists():
    existing = _profile(interests=["Cloud"], skills=[SkillEntry(name="Go")])
    update = ProfileUpdate(interests=["cloud"], skills=[SkillEntry(name="Go")])
    merged = merge_profiles(existing, update, MergeStrategy.APPEND)
    assert merged.interests == ["Cloud", "cloud"]
    assert len(merged.skills) == 2

    merged = merge_profiles(existing, update, MergeStrategy.MERGE)
    assert merged.interests == ["Cloud"]
    assert len(merged.skills) == 1


def test_education_union_by_degree_and_institution():
    mit = EducationEntry(degree="BSc", institution="MIT")
    existing = _profile(education=[mit])
    update = ProfileUpdate(education=[EducationEntry(degree="bsc", institution="mit"),
                                      EducationEntry(degree="MSc", institution="MIT")])
    merged = merge_profiles(existing, update)
    assert [e.degree for e in merged.education] == ["BSc", "MSc"]


def test_salary_overwritten_only_by_positive_amount():
    existing = _profile(salary=SalaryExpectation(expected=90000))
    assert merge_profiles(existing, ProfileUpdate(salary=SalaryExpectation(expected=0))).salary.expected == 90000
    assert merge_profiles(existing, ProfileUpdate(salary=SalaryExpectation(expected=95000))).salary.expected == 95000


def test_location_and_availability_merge_subfields():
    existing = _profile(location=LocationPreference(current="Austin", willing_to_relocate=True),
                        availability=Availability(notice_period=14))
    update = ProfileUpdate(location=LocationPreference(current="Denver"),
                           availability=Availability(notice_period=30, preferred_schedule="Full-time"))
    merged = merge_profiles(existing, update)

    assert merged.location.current == "Denver"
    assert merged.location.willing_to_relocate is True
    assert merged.availability.notice_period == 14
    assert merged.availability.preferred_schedule.value == "Full-time"


def test_merge_does_not_mutate_inputs_and_recomputes_confidence():
    existing = _profile(name="Sarah Johnson")
    snapshot = existing.model_dump()
    merged = merge_profiles(existing, ProfileUpdate(email="sarah@example.com", experience=Experience(years=5)))

    assert existing.model_dump() == snapshot
    assert merged.confidence == pytest.approx(0.35)
    assert merged.confidence == compute_profile_confidence(merged)
    assert merged.last_updated >= existing.last_updated


def test_confidence_bounds():
    assert compute_profile_confidence(CandidateProfile()) == 0.0

    full = _profile(
        name="A B", email="a@b.co", phone="5551234567",
        experience=Experience(years=10, description="Lead engineer"),
        skills=[SkillEntry(name=f"skill-{i}") for i in range(20)],
        education=[EducationEntry(degree="PhD")],
        interests=["AI"],
        availability=Availability(notice_period=0),
        salary=SalaryExpectation(expected=100000),
        location=LocationPreference(current="Berlin"),
    )
    assert full.confidence == pytest.approx(1.0)


def test_profile_changes_lists_changed_fields():
    before = _profile(name="Sam")
    after = merge_profiles(before, ProfileUpdate(email="sam@example.com"))
    changes = profile_changes(before, after)
    assert [c["field"] for c in changes] == ["email"]
    assert changes[0]["old_value"] is None


def test_validation_errors_and_warnings():
    errors, warnings = validate_profile(ProfileUpdate(email="not-an-email", phone="12-34"))
    assert "Invalid email format" in errors
    assert "Invalid phone format" in errors

    errors, warnings = validate_profile(ProfileUpdate(
        skills=[SkillEntry(name="Python"), SkillEntry(name="python")],
        salary=SalaryExpectation(expected=2_000_000),
    ))
    assert errors == []
    assert "Duplicate skill: python" in warnings
    assert "Expected salary seems unusually high" in warnings
    assert "Neither name nor email provided" in warnings


def test_phone_needs_ten_digits():
    assert is_valid_phone("+1 (555) 123-4567")
    assert not is_valid_phone("555-1234")


def test_format_profile_variants():
    profile = _profile(name="Sam", email="sam@example.com", skills=[SkillEntry(name=f"s{i}") for i in range(7)])
    assert set(format_profile(profile, "minimal")) == {"name", "email", "confidence"}
    assert len(format_profile(profile, "summary")["skills"]) == 5
    detailed = format_profile(profile, "full", include_confidence=True)
    assert detailed["confidence_details"]["overall"] == profile.confidence


def test_profile_fit_against_job():
    profile = _profile(experience=Experience(years=2),
                       skills=[SkillEntry(name="Python"), SkillEntry(name="PostgreSQL")])
    fit = analyze_profile_fit(profile, BACKEND_DEVELOPER)

    assert fit["matched_skills"] == ["Python", "PostgreSQL"]
    assert "Go" in fit["missing_skills"]
    assert fit["experience_match"] == 0.5
    assert 0.0 <= fit["overall_fit"] <= 1.0
    assert "Consider gaining more experience in the required areas" in fit["recommendations"]


def test_education_fills_in_the_same_degree():
    existing = _profile(education=[EducationEntry(degree="Bachelor's in Computer Science")])
    update = ProfileUpdate(education=[EducationEntry(degree="Bachelor's", institution="Stanford University",
                                                     graduation_year=2018)])
    merged = merge_profiles(existing, update)

    assert len(merged.education) == 1
    entry = merged.education[0]
    assert entry.degree == "Bachelor's in Computer Science"
    assert entry.institution == "Stanford University"
    assert entry.graduation_year == 2018

    other_school = ProfileUpdate(education=[EducationEntry(degree="Bachelor's", institution="MIT")])
    assert len(merge_profiles(merged, other_school).education) == 2
