"""
Conversation stage state machine.

Stages only move forward. ``next_stage`` is pure: it looks at the current
stage, the profile gathered so far and the number of messages exchanged,
and applies the transition table until no further rule holds.
"""
from dataclasses import dataclass
from typing import Callable, Dict, List

from models.candidate import CandidateProfile, ConversationStage

STAGE_ORDER: List[ConversationStage] = [
    ConversationStage.GREETING,
    ConversationStage.INFORMATION_GATHERING,
    ConversationStage.QUALIFICATION_ASSESSMENT,
    ConversationStage.SALARY_NEGOTIATION,
    ConversationStage.WRAPPING_UP,
    ConversationStage.COMPLETED,
]

# Stages the conversation loop can move between; COMPLETED is reached only
# by completing the session
CONVERSATION_STAGES = STAGE_ORDER[:-1]


@dataclass(frozen=True)
class StageTransition:
    target: ConversationStage
    condition: Callable[[CandidateProfile, int], bool]
    description: str


def _has_contact(profile: CandidateProfile) -> bool:
    return bool(profile.name) and bool(profile.email or profile.phone)


def _has_qualifications(profile: CandidateProfile) -> bool:
    has_experience = profile.experience.years > 0 or profile.experience.months > 0
    return has_experience and len(profile.skills) >= 1


def _has_salary(profile: CandidateProfile) -> bool:
    return profile.salary.expected > 0


TRANSITIONS: Dict[ConversationStage, StageTransition] = {
    ConversationStage.GREETING: StageTransition(
        ConversationStage.INFORMATION_GATHERING,
        lambda profile, count: count >= 2,
        "after the opening exchange",
    ),
    ConversationStage.INFORMATION_GATHERING: StageTransition(
        ConversationStage.QUALIFICATION_ASSESSMENT,
        lambda profile, count: (count >= 4 and _has_contact(profile)) or count >= 10,
        "name and a contact method known",
    ),
    ConversationStage.QUALIFICATION_ASSESSMENT: StageTransition(
        ConversationStage.SALARY_NEGOTIATION,
        lambda profile, count: (count >= 6 and _has_qualifications(profile)) or count >= 16,
        "experience and at least one skill known",
    ),
    ConversationStage.SALARY_NEGOTIATION: StageTransition(
        ConversationStage.WRAPPING_UP,
        lambda profile, count: (count >= 8 and _has_salary(profile)) or count >= 22,
        "salary expectation known",
    ),
}


def stage_index(stage: ConversationStage) -> int:
    return STAGE_ORDER.index(ConversationStage(stage))


def next_stage(current: ConversationStage, profile: CandidateProfile, message_count: int) -> ConversationStage:
    """Advance through every transition whose condition holds. Never moves backwards."""
    stage = ConversationStage(current)
    while stage in TRANSITIONS:
        transition = TRANSITIONS[stage]
        if not transition.condition(profile, message_count):
            break
        stage = transition.target
    return stage


def stage_progress(stage: ConversationStage) -> int:
    """Percent of the conversation covered, 0 at greeting and 100 when completed"""
    return round(stage_index(stage) * 100 / (len(STAGE_ORDER) - 1))


def is_terminal(stage: ConversationStage) -> bool:
    return ConversationStage(stage) == ConversationStage.COMPLETED
