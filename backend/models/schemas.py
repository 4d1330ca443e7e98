"""
API request/response contracts for the chat endpoints
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from models.candidate import (
    CandidateProfile,
    ChatMessage,
    ConversationSession,
    ConversationStage,
    JobPosting,
    MergeStrategy,
    ProfileUpdate,
    SessionStatus,
)


class ProfileFormat(str, Enum):
    FULL = "full"
    SUMMARY = "summary"
    MINIMAL = "minimal"


# ============================================================================
# Sessions
# ============================================================================

class CreateSessionRequest(BaseModel):
    job_id: Optional[str] = Field(default=None, description="Job posting id, default posting when omitted")
    profile: Optional[ProfileUpdate] = Field(default=None, description="Seed profile data")


class ExtendSessionRequest(BaseModel):
    hours: int = Field(default=24, ge=1, le=24 * 30)


class ResetSessionRequest(BaseModel):
    keep_profile: bool = False


class SessionResponse(BaseModel):
    id: str
    status: SessionStatus
    stage: ConversationStage
    version: int
    job_id: str
    job_title: str
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    time_remaining_seconds: float
    message_count: int
    messages: List[ChatMessage] = Field(default_factory=list)
    candidate_profile: CandidateProfile

    @classmethod
    def from_session(cls, session: ConversationSession, now: datetime, include_messages: bool = True) -> "SessionResponse":
        return cls(
            id=session.id,
            status=session.status,
            stage=session.stage,
            version=session.version,
            job_id=session.job_context.id,
            job_title=session.job_context.title,
            created_at=session.created_at,
            updated_at=session.updated_at,
            expires_at=session.expires_at,
            time_remaining_seconds=max((session.expires_at - now).total_seconds(), 0.0),
            message_count=len(session.messages),
            messages=session.messages if include_messages else [],
            candidate_profile=session.candidate_profile,
        )


class CleanupResponse(BaseModel):
    removed: int
    remaining: int


# ============================================================================
# Chat
# ============================================================================

class ChatRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=4000)

    @field_validator('message')
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message cannot be blank")
        return v


class ChatResponse(BaseModel):
    session_id: str
    message: ChatMessage
    stage: ConversationStage
    previous_stage: ConversationStage
    profile: CandidateProfile
    extracted_info: Dict[str, Any] = Field(default_factory=dict)
    confidence: float
    fallback_used: bool
    suggestions: List[str] = Field(default_factory=list)
    processing_time_ms: float


# ============================================================================
# Candidate profile
# ============================================================================

class ProfileUpdateRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    profile: ProfileUpdate
    merge_strategy: MergeStrategy = MergeStrategy.MERGE
    confidence_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    expected_version: Optional[int] = Field(default=None, ge=0)


class ProfileUpdateResponse(BaseModel):
    success: bool = True
    profile: CandidateProfile
    confidence: float
    changes: List[Dict[str, Any]] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ProfileAnalysisRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    job_id: Optional[str] = Field(default=None, description="Compare against another posting")


# ============================================================================
# Jobs & status
# ============================================================================

class JobListResponse(BaseModel):
    jobs: List[JobPosting]
    total: int
