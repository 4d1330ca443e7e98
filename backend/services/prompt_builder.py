"""
Prompt Builder
==============
Renders the text prompt sent to the language model for one chat turn.

Section order is fixed: persona, job facts, stage instructions, recent
conversation, known profile, current message, closing directive. Missing
profile fields render as "Not specified" so the template keeps the same
shape on every turn.
"""
import logging
from typing import Dict, List, Optional, Sequence

from models.candidate import (
    CandidateProfile,
    ChatMessage,
    ConversationStage,
    JobPosting,
    MessageRole,
)

logger = logging.getLogger(__name__)

NOT_SPECIFIED = "Not specified"
EMPTY_HISTORY = "This is the beginning of the conversation."
DEFAULT_HISTORY_LIMIT = 6
DEFAULT_MAX_CHARS = 12000
MESSAGE_CLIP_CHARS = 500
SHORT_LIST_ITEMS = 3


# ============================================================================
# Stage instructions
# ============================================================================

STAGE_INSTRUCTIONS: Dict[ConversationStage, str] = {
    ConversationStage.GREETING: (
        "- Greet the candidate warmly and introduce yourself as a recruitment assistant\n"
        "- Briefly mention the job opportunity ({title} at {company})\n"
        "- Ask how they heard about the position\n"
        "- Keep the tone friendly and professional"
    ),
    ConversationStage.INFORMATION_GATHERING: (
        "- Ask for their name and contact information (email or phone)\n"
        "- Inquire about their current role and experience\n"
        "- Ask about their key skills and the technologies they work with\n"
        "- Be conversational and make them feel comfortable"
    ),
    ConversationStage.QUALIFICATION_ASSESSMENT: (
        "- Ask specific questions about their experience with the required technologies\n"
        "- Inquire about their experience with similar responsibilities\n"
        "- Ask about their achievements and projects\n"
        "- Assess their fit for the role requirements"
    ),
    ConversationStage.SALARY_NEGOTIATION: (
        "- Ask about their salary expectations\n"
        "- Discuss the salary range for the position\n"
        "- Inquire about their notice period and availability\n"
        "- Be transparent about compensation details"
    ),
    ConversationStage.WRAPPING_UP: (
        "- Summarize the key points discussed\n"
        "- Ask if they have any questions about the role\n"
        "- Provide next steps in the hiring process\n"
        "- Thank them for their time and interest"
    ),
    ConversationStage.COMPLETED: (
        "- The screening conversation is complete\n"
        "- Answer any remaining questions briefly\n"
        "- Remind the candidate that the hiring team will follow up"
    ),
}

FOLLOW_UP_QUESTIONS: Dict[ConversationStage, List[str]] = {
    ConversationStage.GREETING: [
        "What interests you about this position?",
        "Could you tell me about your background?",
    ],
    ConversationStage.INFORMATION_GATHERING: [
        "What is the best email or phone number to reach you?",
        "What is your current role?",
        "Which technologies do you work with most?",
    ],
    ConversationStage.QUALIFICATION_ASSESSMENT: [
        "How many years of experience do you have?",
        "Tell me about your most relevant project.",
        "How do you think your experience matches our requirements?",
    ],
    ConversationStage.SALARY_NEGOTIATION: [
        "What are your salary expectations?",
        "What is your notice period?",
    ],
    ConversationStage.WRAPPING_UP: [
        "What would you like to know about next steps?",
        "Do you have any other questions?",
        "When would you be available for a follow-up?",
    ],
}

PERSONA = (
    "You are a recruitment assistant for {company}, helping to engage with candidates "
    "for the {title} position.\n"
    "Your role is to:\n"
    "- Engage candidates in natural conversation\n"
    "- Learn about their qualifications\n"
    "- Provide information about the job opportunity\n"
    "- Assess candidate fit for the position\n"
    "- Maintain a professional and friendly tone"
)

CLOSING_DIRECTIVE = (
    "Respond conversationally as the recruitment assistant. Ask one question at a time, "
    "keep the reply concise, and stay professional and respectful.\n"
    "Assistant:"
)


def stage_follow_up_questions(stage: ConversationStage) -> List[str]:
    return list(FOLLOW_UP_QUESTIONS.get(ConversationStage(stage), ["Is there anything else you'd like to discuss?"]))


# ============================================================================
# Section renderers
# ============================================================================

def _bullets(items: Sequence[str], limit: Optional[int] = None) -> str:
    shown = list(items[:limit] if limit else items)
    if not shown:
        return f"- {NOT_SPECIFIED}"
    lines = [f"- {item}" for item in shown]
    if limit and len(items) > limit:
        lines.append(f"- (and {len(items) - limit} more)")
    return "\n".join(lines)


def _money(amount: float) -> str:
    return f"{amount:,.0f}"


def render_job(job: JobPosting, list_limit: Optional[int] = None) -> str:
    if job.salary:
        salary = f"{_money(job.salary.min)} - {_money(job.salary.max)} {job.salary.currency}"
    else:
        salary = NOT_SPECIFIED
    experience = f"{job.experience.min}-{job.experience.max} {job.experience.unit}"
    return "\n".join([
        "Job details:",
        f"- Title: {job.title}",
        f"- Company: {job.company}",
        f"- Location: {job.location or NOT_SPECIFIED}",
        f"- Employment type: {job.employment_type.value}",
        f"- Remote: {'Yes' if job.remote else 'No'}",
        f"- Salary range: {salary}",
        f"- Experience: {experience}",
        f"- Key skills: {', '.join(job.skills) if job.skills else NOT_SPECIFIED}",
        "Requirements:",
        _bullets(job.requirements, list_limit),
        "Responsibilities:",
        _bullets(job.responsibilities, list_limit),
    ])


def render_stage(stage: ConversationStage, job: JobPosting) -> str:
    stage = ConversationStage(stage)
    instructions = STAGE_INSTRUCTIONS[stage].format(title=job.title, company=job.company)
    return f"Current stage: {stage.value}\nInstructions for this stage:\n{instructions}"


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3].rstrip() + "..."


def _role_label(role: MessageRole) -> str:
    return {MessageRole.USER: "User", MessageRole.ASSISTANT: "Assistant"}.get(role, "System")


def render_history(history: Sequence[ChatMessage]) -> str:
    if not history:
        return EMPTY_HISTORY
    lines = [f"{_role_label(m.role)}: {_clip(m.content, MESSAGE_CLIP_CHARS)}" for m in history]
    return "Recent conversation:\n" + "\n".join(lines)


def _value(value) -> str:
    return str(value) if value not in (None, "", []) else NOT_SPECIFIED


def render_profile(profile: CandidateProfile) -> str:
    experience = NOT_SPECIFIED
    if profile.experience.years or profile.experience.months:
        experience = f"{profile.experience.years} years, {profile.experience.months} months"
    if profile.experience.description:
        experience = (
            f"{experience} ({profile.experience.description})"
            if experience != NOT_SPECIFIED else profile.experience.description
        )

    skills = ", ".join(f"{s.name} ({s.level.value})" for s in profile.skills)

    education = "; ".join(
        ", ".join(part for part in (
            e.degree,
            e.institution,
            str(e.graduation_year) if e.graduation_year else "",
        ) if part)
        for e in profile.education
    )

    location = profile.location.current
    if location and profile.location.willing_to_relocate:
        location += " (willing to relocate)"
    if profile.location.preferred_locations:
        location = f"{location or NOT_SPECIFIED}; prefers {', '.join(profile.location.preferred_locations)}"

    availability_parts = []
    if profile.availability.start_date:
        availability_parts.append(f"start {profile.availability.start_date.date().isoformat()}")
    if profile.availability.notice_period is not None:
        availability_parts.append(f"{profile.availability.notice_period} days notice")
    if profile.availability.preferred_schedule:
        availability_parts.append(profile.availability.preferred_schedule.value)

    salary = ""
    if profile.salary.expected > 0:
        salary = f"{_money(profile.salary.expected)} {profile.salary.currency}"
        salary += " (negotiable)" if profile.salary.negotiable else " (firm)"

    return "\n".join([
        "Candidate profile so far:",
        f"- Name: {_value(profile.name)}",
        f"- Email: {_value(profile.email)}",
        f"- Phone: {_value(profile.phone)}",
        f"- Experience: {experience}",
        f"- Skills: {_value(skills)}",
        f"- Education: {_value(education)}",
        f"- Interests: {_value(', '.join(profile.interests))}",
        f"- Location: {_value(location)}",
        f"- Availability: {_value(', '.join(availability_parts))}",
        f"- Salary expectation: {_value(salary)}",
    ])


# ============================================================================
# Assembly
# ============================================================================

def _assemble(head: List[str], tail: List[str]) -> str:
    return "\n\n".join(head + tail)


def build_prompt(
    user_message: str,
    job: JobPosting,
    profile: CandidateProfile,
    history: Sequence[ChatMessage],
    stage: ConversationStage,
    *,
    history_limit: int = DEFAULT_HISTORY_LIMIT,
    max_chars: int = DEFAULT_MAX_CHARS,
) -> str:
    """
    Build the prompt for one turn.

    ``history`` is the conversation before ``user_message``. When the
    result would exceed ``max_chars`` it is shortened in this order:
    oldest history messages, then the job requirement lists, then a hard
    cut of the leading sections. The current message and the closing
    directive are always kept.
    """
    recent = list(history)[-history_limit:] if history_limit > 0 else []
    tail = [f"User: {_clip(user_message, max(max_chars // 2, 1))}", CLOSING_DIRECTIVE]
    persona = PERSONA.format(company=job.company, title=job.title)
    stage_block = render_stage(stage, job)
    profile_block = render_profile(profile)

    def head(job_block: str, messages: Sequence[ChatMessage]) -> List[str]:
        return [persona, job_block, stage_block, render_history(messages), profile_block]

    job_block = render_job(job)
    prompt = _assemble(head(job_block, recent), tail)

    while len(prompt) > max_chars and recent:
        recent = recent[1:]
        prompt = _assemble(head(job_block, recent), tail)

    if len(prompt) > max_chars:
        job_block = render_job(job, list_limit=SHORT_LIST_ITEMS)
        prompt = _assemble(head(job_block, recent), tail)

    if len(prompt) > max_chars:
        tail_text = "\n\n".join(tail)
        budget = max(max_chars - len(tail_text) - 2, 0)
        head_text = "\n\n".join(head(job_block, recent))[:budget]
        prompt = f"{head_text}\n\n{tail_text}" if head_text else tail_text
        logger.debug("Prompt hard-capped", extra={"max_chars": max_chars})

    return prompt


class PromptBuilder:
    """Holds the size limits so callers only pass the turn's data"""

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT, max_chars: int = DEFAULT_MAX_CHARS):
        self.history_limit = history_limit
        self.max_chars = max_chars

    def build(self, user_message: str, job: JobPosting, profile: CandidateProfile,
              history: Sequence[ChatMessage], stage: ConversationStage) -> str:
        return build_prompt(
            user_message, job, profile, history, stage,
            history_limit=self.history_limit,
            max_chars=self.max_chars,
        )
