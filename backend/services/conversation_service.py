"""
Conversation Orchestrator
=========================
Runs one chat turn end to end:

    user text -> append -> extract -> merge -> stage -> prompt -> LLM -> append reply

Also hosts the profile update, conversation analysis and metrics
operations that combine several services.
"""
import logging
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.exceptions import (
    AppException,
    ConversationProcessingError,
    LowConfidenceError,
    ValidationError,
)
from core.logging import PerformanceLogger
from models.candidate import (
    CandidateProfile,
    ChatMessage,
    ConversationSession,
    ConversationStage,
    MergeStrategy,
    MessageMetadata,
    MessageRole,
    ProfileUpdate,
)
from services.extraction_service import ExtractionEngine, ExtractionResult
from services.llm_gateway import GenerationResult, LLMGateway
from services.profile_service import (
    matched_job_skills,
    merge_profiles,
    populated_fields,
    profile_changes,
    total_experience_years,
    validate_profile,
)
from services.prompt_builder import PromptBuilder, stage_follow_up_questions
from services.session_manager import SessionManager
from services.stage_tracker import next_stage, stage_progress

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000
EXTRACTABLE_FIELDS = 10


class ConversationTurn(BaseModel):
    session_id: str
    user_message: ChatMessage
    assistant_message: ChatMessage
    profile: CandidateProfile
    stage: ConversationStage
    previous_stage: ConversationStage
    extracted_info: Dict[str, Any] = Field(default_factory=dict)
    confidence: float
    fallback_used: bool = False
    suggestions: List[str] = Field(default_factory=list)
    processing_time_ms: float = 0.0


class ProfileUpdateResult(BaseModel):
    profile: CandidateProfile
    confidence: float
    changes: List[Dict[str, Any]] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def normalize_message(text: str) -> str:
    normalized = " ".join((text or "").split())
    if not normalized:
        raise ValidationError("Message cannot be empty", field="message")
    if len(normalized) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Message exceeds {MAX_MESSAGE_LENGTH} characters",
            field="message",
            details={"length": len(normalized)},
        )
    return normalized


class ConversationService:
    """Composes extraction, stage tracking, prompting and generation over a session"""

    def __init__(
        self,
        sessions: SessionManager,
        extractor: ExtractionEngine,
        gateway: LLMGateway,
        prompt_builder: Optional[PromptBuilder] = None,
    ):
        self.sessions = sessions
        self.extractor = extractor
        self.gateway = gateway
        self.prompt_builder = prompt_builder or PromptBuilder()

    def _extract(self, session: ConversationSession) -> ExtractionResult:
        try:
            return self.extractor.extract(session.user_messages())
        except Exception:
            logger.exception("Extraction raised; continuing without extracted data",
                             extra={"session_id": session.id})
            return ExtractionResult()

    async def process_message(self, session_id: str, text: str) -> ConversationTurn:
        content = normalize_message(text)
        started = time.perf_counter()

        with PerformanceLogger(logger, "chat_turn", session_id=session_id):
            try:
                return await self._run_turn(session_id, content, started)
            except AppException:
                raise
            except Exception as e:
                logger.exception("Chat turn failed", extra={"session_id": session_id})
                raise ConversationProcessingError(str(e), session_id=session_id) from e

    async def _run_turn(self, session_id: str, content: str, started: float) -> ConversationTurn:
        state: Dict[str, Any] = {}

        def ingest(session: ConversationSession) -> None:
            user_message = ChatMessage(
                content=content,
                role=MessageRole.USER,
                session_id=session.id,
                timestamp=self.sessions.clock(),
            )
            session.messages.append(user_message)
            extraction = self._extract(session)
            if not extraction.is_empty():
                session.candidate_profile = merge_profiles(
                    session.candidate_profile, extraction.profile, MergeStrategy.MERGE,
                    now=self.sessions.clock(),
                )
            state["previous_stage"] = session.stage
            session.stage = next_stage(session.stage, session.candidate_profile, len(session.messages))
            state["user_message"] = user_message
            state["extraction"] = extraction

        session = self.sessions.modify_session(session_id, ingest, require_active=True)
        if session.stage != state["previous_stage"]:
            logger.info(
                f"Stage {state['previous_stage'].value} -> {session.stage.value}",
                extra={"session_id": session_id},
            )

        prompt = self.prompt_builder.build(
            content,
            session.job_context,
            session.candidate_profile,
            session.messages[:-1],
            session.stage,
        )

        try:
            result: GenerationResult = await self.gateway.generate(prompt, session.stage)
        except AppException as e:
            raise ConversationProcessingError(e.message, session_id=session_id) from e

        extraction: ExtractionResult = state["extraction"]
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        assistant_message = self.sessions.append_message(
            session_id,
            MessageRole.ASSISTANT,
            result.text[:MAX_MESSAGE_LENGTH],
            metadata=MessageMetadata(
                extracted_info=extraction.extracted_info() or None,
                confidence=result.confidence,
                processing_time_ms=elapsed_ms,
                stage=session.stage,
                fallback=result.fallback,
            ),
        )

        return ConversationTurn(
            session_id=session_id,
            user_message=state["user_message"],
            assistant_message=assistant_message,
            profile=session.candidate_profile,
            stage=session.stage,
            previous_stage=state["previous_stage"],
            extracted_info=extraction.extracted_info(),
            confidence=session.candidate_profile.confidence,
            fallback_used=result.fallback,
            suggestions=stage_follow_up_questions(session.stage),
            processing_time_ms=elapsed_ms,
        )

    # ========================================================================
    # Profile updates
    # ========================================================================

    def update_profile(
        self,
        session_id: str,
        update: ProfileUpdate,
        strategy: MergeStrategy = MergeStrategy.MERGE,
        confidence_threshold: Optional[float] = None,
        expected_version: Optional[int] = None,
    ) -> ProfileUpdateResult:
        """
        Merge an explicit profile update into a session.

        Raises ValidationError for malformed contact data and
        LowConfidenceError when the merged profile would score below
        ``confidence_threshold``; nothing is saved in either case.
        """
        if update.is_empty():
            raise ValidationError("Profile update contains no fields", field="profile")
        errors, warnings = validate_profile(update)
        if errors:
            raise ValidationError("Profile validation failed", field="profile", details={"errors": errors})

        state: Dict[str, Any] = {}

        def apply(session: ConversationSession) -> None:
            before = session.candidate_profile
            merged = merge_profiles(before, update, strategy, now=self.sessions.clock())
            if confidence_threshold is not None and merged.confidence < confidence_threshold:
                raise LowConfidenceError(merged.confidence, confidence_threshold)
            state["changes"] = profile_changes(before, merged)
            session.candidate_profile = merged

        session = self.sessions.modify_session(session_id, apply, expected_version=expected_version)
        profile = session.candidate_profile
        logger.info(
            f"Profile updated ({strategy.value if isinstance(strategy, MergeStrategy) else strategy}), "
            f"{len(state['changes'])} field(s) changed",
            extra={"session_id": session_id},
        )
        return ProfileUpdateResult(
            profile=profile,
            confidence=profile.confidence,
            changes=state["changes"],
            warnings=warnings,
        )

    # ========================================================================
    # Analysis
    # ========================================================================

    def analyze_conversation(self, session_id: str) -> Dict[str, Any]:
        """Candidate fit (0-100) with strengths, gaps, concerns and suggested actions"""
        session = self.sessions.require_session(session_id)
        profile, job = session.candidate_profile, session.job_context

        fit = 0.0
        strengths: List[str] = []
        gaps: List[str] = []
        concerns: List[str] = []

        years = total_experience_years(profile)
        if years > 0:
            required = job.experience.min if job.experience.unit == "years" else job.experience.min / 12
            if years >= required:
                fit += 25
                strengths.append(f"Strong experience ({years:g} years)")
            else:
                gaps.append(f"Experience gap: {years:g} years vs {required:g} required")

        if profile.skills and job.skills:
            matched, missing = matched_job_skills(profile, job)
            match_pct = len(matched) / len(job.skills) * 100
            fit += match_pct * 0.4
            if matched:
                strengths.append(f"Matching skills: {', '.join(matched)}")
            if match_pct < 50:
                concerns.append("Limited skill overlap with requirements")
            gaps.extend(f"Missing skill: {s}" for s in missing)

        if profile.education:
            fit += 15
            strengths.append(f"Education: {profile.education[0].degree}")

        if profile.salary.expected > 0 and job.salary:
            if job.salary.min <= profile.salary.expected <= job.salary.max:
                fit += 20
                strengths.append("Salary expectations within range")
            elif profile.salary.expected > job.salary.max:
                concerns.append("Salary expectations above range")

        fit = round(max(0.0, min(fit, 100.0)), 1)
        return {
            "session_id": session_id,
            "stage": session.stage.value,
            "candidate_fit": fit,
            "strengths": strengths,
            "qualification_gaps": gaps,
            "areas_of_concern": concerns,
            "recommended_actions": _recommended_actions(fit),
            "next_steps": _next_steps(fit, session.stage),
        }

    def conversation_metrics(self, session_id: str) -> Dict[str, Any]:
        session = self.sessions.require_session(session_id)
        messages = session.messages
        user_messages = [m for m in messages if m.role == MessageRole.USER]
        assistant_messages = [m for m in messages if m.role == MessageRole.ASSISTANT]

        response_times = [
            (reply.timestamp - prompt.timestamp).total_seconds() * 1000
            for prompt, reply in zip(messages, messages[1:])
            if prompt.role == MessageRole.USER and reply.role == MessageRole.ASSISTANT
        ]
        populated = len(populated_fields(session.candidate_profile))
        avg_length = sum(len(m.content) for m in user_messages) / len(user_messages) if user_messages else 0

        return {
            "session_id": session_id,
            "total_messages": len(messages),
            "user_messages": len(user_messages),
            "assistant_messages": len(assistant_messages),
            "average_response_time_ms": round(sum(response_times) / len(response_times), 2) if response_times else 0.0,
            "fallback_responses": sum(1 for m in assistant_messages if m.metadata and m.metadata.fallback),
            "information_extraction_rate": round(populated / EXTRACTABLE_FIELDS * 100, 1),
            "user_engagement_score": round(min(100.0, avg_length / 2), 1),
            "completion_rate": stage_progress(session.stage),
            "profile_confidence": session.candidate_profile.confidence,
        }


def _recommended_actions(fit: float) -> List[str]:
    if fit >= 80:
        return [
            "Schedule technical interview",
            "Request portfolio or work samples",
            "Discuss next steps in hiring process",
        ]
    if fit >= 60:
        return [
            "Schedule screening call to discuss gaps",
            "Request additional information about experience",
            "Consider if gaps can be addressed through training",
        ]
    return [
        "Politely decline and suggest other opportunities",
        "Provide feedback on qualification gaps",
        "Keep candidate in database for future roles",
    ]


def _next_steps(fit: float, stage: ConversationStage) -> List[str]:
    if stage in (ConversationStage.WRAPPING_UP, ConversationStage.COMPLETED):
        if fit >= 70:
            return ["Schedule follow-up interview", "Request references", "Begin background check process"]
        return ["Send polite rejection email", "Provide constructive feedback", "Suggest alternative opportunities"]
    return [
        "Continue qualification assessment",
        "Gather additional information",
        "Address any concerns or questions",
    ]
