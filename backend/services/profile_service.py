"""
Candidate Profile Service
=========================
Confidence scoring, merge strategies, validation and fit analysis for
candidate profiles.

Merging is table driven: every top-level profile field maps to one rule
(fill-if-empty, max, union-by-key, overwrite-if-positive, shallow merge).
The confidence score is a fixed weighted function of which fields are
populated; it is recomputed after every merge and never set by callers.
"""
import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from models.candidate import (
    Availability,
    CandidateProfile,
    EducationEntry,
    Experience,
    JobPosting,
    LocationPreference,
    MergeStrategy,
    ProfileUpdate,
    SalaryExpectation,
    SkillEntry,
)

logger = logging.getLogger(__name__)


# ============================================================================
# CONFIDENCE SCORING
# ============================================================================

# Section weights sum to 1.0: identity .25, experience .20, skills .25,
# education .15, additional .15
IDENTITY_WEIGHTS = {"name": 0.10, "email": 0.10, "phone": 0.05}
EXPERIENCE_WEIGHT = 0.15
EXPERIENCE_DESCRIPTION_WEIGHT = 0.05
SKILL_WEIGHT_EACH = 0.05
SKILLS_WEIGHT_CAP = 0.25
EDUCATION_WEIGHT = 0.15
ADDITIONAL_WEIGHTS = {"interests": 0.04, "salary": 0.04, "location": 0.04, "availability": 0.03}
TOTAL_WEIGHT = 1.0


def _has_experience(experience: Optional[Experience]) -> bool:
    return experience is not None and (experience.years > 0 or experience.months > 0)


def compute_confidence(
    *,
    name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    experience: Optional[Experience] = None,
    skills: Optional[List[SkillEntry]] = None,
    education: Optional[List[EducationEntry]] = None,
    interests: Optional[List[str]] = None,
    availability: Optional[Availability] = None,
    salary: Optional[SalaryExpectation] = None,
    location: Optional[LocationPreference] = None,
) -> float:
    """Weighted completeness score in [0, 1]; each weight counts only if its field is present."""
    score = 0.0

    identity = {"name": name, "email": email, "phone": phone}
    for field, weight in IDENTITY_WEIGHTS.items():
        if identity[field]:
            score += weight

    if _has_experience(experience):
        score += EXPERIENCE_WEIGHT
    if experience is not None and experience.description:
        score += EXPERIENCE_DESCRIPTION_WEIGHT

    if skills:
        score += min(len(skills) * SKILL_WEIGHT_EACH, SKILLS_WEIGHT_CAP)

    if education:
        score += EDUCATION_WEIGHT

    if interests:
        score += ADDITIONAL_WEIGHTS["interests"]
    if salary is not None and salary.expected > 0:
        score += ADDITIONAL_WEIGHTS["salary"]
    if location is not None and location.current:
        score += ADDITIONAL_WEIGHTS["location"]
    if availability is not None and not availability.is_empty():
        score += ADDITIONAL_WEIGHTS["availability"]

    return round(max(0.0, min(score / TOTAL_WEIGHT, 1.0)), 4)


def compute_profile_confidence(profile: CandidateProfile) -> float:
    return compute_confidence(
        name=profile.name,
        email=profile.email,
        phone=profile.phone,
        experience=profile.experience,
        skills=profile.skills,
        education=profile.education,
        interests=profile.interests,
        availability=profile.availability,
        salary=profile.salary,
        location=profile.location,
    )


def compute_update_confidence(update: ProfileUpdate) -> float:
    """Same formula applied to a partial profile"""
    return compute_confidence(**{field: getattr(update, field) for field in update.provided_fields()})


def populated_fields(profile: CandidateProfile) -> List[str]:
    """Names of the top-level profile fields that hold information"""
    checks = {
        "name": bool(profile.name),
        "email": bool(profile.email),
        "phone": bool(profile.phone),
        "experience": _has_experience(profile.experience) or bool(profile.experience.description),
        "skills": bool(profile.skills),
        "education": bool(profile.education),
        "interests": bool(profile.interests),
        "availability": not profile.availability.is_empty(),
        "salary": profile.salary.expected > 0,
        "location": bool(profile.location.current or profile.location.preferred_locations),
    }
    return [name for name, present in checks.items() if present]


def skill_confidence(profile: CandidateProfile) -> float:
    """Average confidence across the profile's skills"""
    if not profile.skills:
        return 0.0
    return round(sum(s.confidence for s in profile.skills) / len(profile.skills), 4)


# ============================================================================
# MERGE RULES
# ============================================================================

def _fill_if_empty(current: Any, new: Any) -> Any:
    return current if current else new


def _max_experience(current: Experience, new: Experience) -> Experience:
    return Experience(
        years=max(current.years, new.years),
        months=max(current.months, new.months),
        description=current.description or new.description,
    )


def _union_skills(current: List[SkillEntry], new: List[SkillEntry]) -> List[SkillEntry]:
    merged: Dict[str, SkillEntry] = {s.name.lower(): s for s in current}
    for skill in new:
        key = skill.name.lower()
        existing = merged.get(key)
        if existing is None or skill.confidence > existing.confidence:
            merged[key] = skill
    return list(merged.values())


def _same_degree(a: str, b: str) -> bool:
    # "Bachelor's" and "Bachelor's in Computer Science" name the same degree
    a, b = a.lower(), b.lower()
    return a == b or a.startswith(b + " in ") or b.startswith(a + " in ")


def _same_education(current: EducationEntry, new: EducationEntry) -> bool:
    if not _same_degree(current.degree, new.degree):
        return False
    institutions = {current.institution.lower(), new.institution.lower()}
    return len(institutions) == 1 or "" in institutions


def _fill_education(current: EducationEntry, new: EducationEntry) -> EducationEntry:
    return EducationEntry(
        degree=max(current.degree, new.degree, key=len),
        institution=current.institution or new.institution,
        graduation_year=current.graduation_year or new.graduation_year,
        gpa=current.gpa if current.gpa is not None else new.gpa,
    )


def _union_education(current: List[EducationEntry], new: List[EducationEntry]) -> List[EducationEntry]:
    merged = list(current)
    for entry in new:
        for i, existing in enumerate(merged):
            if _same_education(existing, entry):
                merged[i] = _fill_education(existing, entry)
                break
        else:
            merged.append(entry)
    return merged


def _union_casefold(current: List[str], new: List[str]) -> List[str]:
    merged = list(current)
    seen = {item.lower() for item in current}
    for item in new:
        if item.lower() not in seen:
            merged.append(item)
            seen.add(item.lower())
    return merged


def _salary_if_positive(current: SalaryExpectation, new: SalaryExpectation) -> SalaryExpectation:
    return new if new.expected > 0 else current


def _shallow_merge(current, new):
    return current.model_copy(update=new.model_dump(exclude_unset=True))


def _fill_subfields(current: Availability, new: Availability) -> Availability:
    updates = {
        key: value
        for key, value in new.model_dump(exclude_unset=True).items()
        if value is not None and getattr(current, key) is None
    }
    return current.model_copy(update=updates)


def _concat(current: List, new: List) -> List:
    return list(current) + list(new)


MergeRule = Callable[[Any, Any], Any]

MERGE_RULES: Dict[str, MergeRule] = {
    "name": _fill_if_empty,
    "email": _fill_if_empty,
    "phone": _fill_if_empty,
    "experience": _max_experience,
    "skills": _union_skills,
    "education": _union_education,
    "interests": _union_casefold,
    "availability": _fill_subfields,
    "salary": _salary_if_positive,
    "location": _shallow_merge,
}

# Append only changes list handling; other fields follow MERGE_RULES
APPEND_RULES: Dict[str, MergeRule] = {
    **MERGE_RULES,
    "skills": _concat,
    "education": _concat,
    "interests": _concat,
}


def merge_profiles(
    existing: CandidateProfile,
    update: ProfileUpdate,
    strategy: MergeStrategy = MergeStrategy.MERGE,
    now: Optional[datetime] = None,
) -> CandidateProfile:
    """
    Combine a partial update into an existing profile.

    replace: provided fields overwrite unconditionally.
    merge:   per-field rule from MERGE_RULES.
    append:  lists concatenated without de-duplication.

    Confidence and last_updated are always recomputed. The existing
    profile is never mutated.
    """
    strategy = MergeStrategy(strategy)
    merged = existing.model_copy(deep=True)

    for field in update.provided_fields():
        new_value = getattr(update, field)
        if strategy == MergeStrategy.REPLACE:
            value = new_value
        else:
            rules = APPEND_RULES if strategy == MergeStrategy.APPEND else MERGE_RULES
            value = rules[field](getattr(merged, field), new_value)
        setattr(merged, field, value.model_copy(deep=True) if hasattr(value, "model_copy") else value)

    merged.confidence = compute_profile_confidence(merged)
    merged.last_updated = now or datetime.now()
    return merged


def profile_changes(before: CandidateProfile, after: CandidateProfile) -> List[Dict[str, Any]]:
    """Top-level fields whose value differs between two profiles"""
    ignored = {"confidence", "last_updated", "id"}
    old, new = before.model_dump(mode="json"), after.model_dump(mode="json")
    return [
        {"field": field, "old_value": old[field], "new_value": new[field]}
        for field in new
        if field not in ignored and old.get(field) != new[field]
    ]


# ============================================================================
# VALIDATION
# ============================================================================

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[\d\s\-()+.]+$")


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_RE.match(phone)) and len(re.sub(r"\D", "", phone)) >= 10


def validate_profile(update: ProfileUpdate) -> Tuple[List[str], List[str]]:
    """Business validation beyond field types. Returns (errors, warnings)."""
    errors: List[str] = []
    warnings: List[str] = []

    if update.email is not None and not is_valid_email(update.email):
        errors.append("Invalid email format")
    if update.phone is not None and not is_valid_phone(update.phone):
        errors.append("Invalid phone format")

    if update.skills:
        seen = set()
        for skill in update.skills:
            key = skill.name.lower()
            if key in seen:
                warnings.append(f"Duplicate skill: {skill.name}")
            seen.add(key)

    if update.salary is not None and update.salary.expected > 1_000_000:
        warnings.append("Expected salary seems unusually high")

    if update.location is not None and len(update.location.preferred_locations) > 10:
        warnings.append("Too many preferred locations (max 10)")

    if not update.name and not update.email:
        warnings.append("Neither name nor email provided")

    return errors, warnings


# ============================================================================
# PRESENTATION & ANALYSIS
# ============================================================================

def format_profile(profile: CandidateProfile, fmt: str = "full", include_confidence: bool = False) -> Dict[str, Any]:
    data = profile.model_dump(mode="json")
    if fmt == "summary":
        data = {
            "name": profile.name,
            "email": profile.email,
            "experience": data["experience"],
            "skills": data["skills"][:5],
            "confidence": profile.confidence,
        }
    elif fmt == "minimal":
        data = {"name": profile.name, "email": profile.email, "confidence": profile.confidence}

    if include_confidence:
        data["confidence_details"] = {
            "overall": profile.confidence,
            "skills": skill_confidence(profile),
            "completeness": compute_profile_confidence(profile),
            "last_updated": profile.last_updated.isoformat(),
        }
    return data


def _normalize_skill(name: str) -> str:
    return re.sub(r"[^a-z0-9+#]", "", name.lower())


def matched_job_skills(profile: CandidateProfile, job: JobPosting) -> Tuple[List[str], List[str]]:
    """(matched, missing) job skills, compared loosely so 'React.js' matches 'React'"""
    candidate = [_normalize_skill(s.name) for s in profile.skills]
    matched, missing = [], []
    for required in job.skills:
        req = _normalize_skill(required)
        if any(req and c and (req in c or c in req) for c in candidate):
            matched.append(required)
        else:
            missing.append(required)
    return matched, missing


def total_experience_years(profile: CandidateProfile) -> float:
    return profile.experience.years + profile.experience.months / 12


def analyze_profile_fit(profile: CandidateProfile, job: JobPosting) -> Dict[str, Any]:
    """Skill and experience match of a profile against a posting"""
    matched, missing = matched_job_skills(profile, job)
    skill_match = len(matched) / len(job.skills) if job.skills else 1.0

    required_years = job.experience.min if job.experience.unit == "years" else job.experience.min / 12
    years = total_experience_years(profile)
    experience_match = min(years / required_years, 1.0) if required_years > 0 else 1.0

    strengths, recommendations = [], []
    if matched:
        strengths.append(f"Matching skills: {', '.join(matched)}")
    if experience_match >= 1.0 and years > 0:
        strengths.append(f"Meets experience requirement ({years:g} years)")

    if skill_match < 0.5:
        recommendations.append("Consider adding more relevant skills to your profile")
    if experience_match < 0.8:
        recommendations.append("Consider gaining more experience in the required areas")

    return {
        "overall_fit": round((skill_match + experience_match) / 2, 4),
        "skill_match": round(skill_match, 4),
        "experience_match": round(experience_match, 4),
        "matched_skills": matched,
        "missing_skills": missing,
        "strengths": strengths,
        "gaps": [f"Missing skill: {s}" for s in missing],
        "recommendations": recommendations,
    }
