"""
Domain models for the recruitment conversation:
job postings, candidate profiles, chat messages and sessions.
"""
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# Enums for Type Safety
# ============================================================================

class EmploymentType(str, Enum):
    FULL_TIME = "Full-time"
    PART_TIME = "Part-time"
    CONTRACT = "Contract"
    INTERNSHIP = "Internship"


class SkillLevel(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    EXPERT = "Expert"


class Schedule(str, Enum):
    FULL_TIME = "Full-time"
    PART_TIME = "Part-time"
    FLEXIBLE = "Flexible"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"


class ConversationStage(str, Enum):
    """Conversation phases in visitation order"""
    GREETING = "greeting"
    INFORMATION_GATHERING = "information_gathering"
    QUALIFICATION_ASSESSMENT = "qualification_assessment"
    SALARY_NEGOTIATION = "salary_negotiation"
    WRAPPING_UP = "wrapping_up"
    COMPLETED = "completed"


class MergeStrategy(str, Enum):
    REPLACE = "replace"
    MERGE = "merge"
    APPEND = "append"


# ============================================================================
# Job posting (read-only reference data)
# ============================================================================

class SalaryRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float = Field(..., ge=0)
    max: float = Field(..., ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)


class ExperienceRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: int = Field(default=0, ge=0)
    max: int = Field(default=0, ge=0)
    unit: str = Field(default="years", pattern="^(years|months)$")


class JobPosting(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    company: str
    location: str = ""
    employment_type: EmploymentType = EmploymentType.FULL_TIME
    requirements: List[str] = Field(default_factory=list)
    responsibilities: List[str] = Field(default_factory=list)
    benefits: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    salary: Optional[SalaryRange] = None
    experience: ExperienceRange = Field(default_factory=ExperienceRange)
    department: Optional[str] = None
    remote: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


# ============================================================================
# Candidate profile
# ============================================================================

class Experience(BaseModel):
    years: int = Field(default=0, ge=0, le=60)
    months: int = Field(default=0, ge=0, le=11)
    description: Optional[str] = None


class SkillEntry(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    level: SkillLevel = SkillLevel.INTERMEDIATE
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class EducationEntry(BaseModel):
    degree: str = Field(..., min_length=1, max_length=200)
    institution: str = Field(default="", max_length=200)
    graduation_year: Optional[int] = Field(default=None, ge=1900, le=2100)
    gpa: Optional[float] = Field(default=None, ge=0, le=10.0)


class Availability(BaseModel):
    start_date: Optional[datetime] = None
    notice_period: Optional[int] = Field(default=None, ge=0, le=365, description="Days")
    preferred_schedule: Optional[Schedule] = None

    def is_empty(self) -> bool:
        return self.start_date is None and self.notice_period is None and self.preferred_schedule is None


class SalaryExpectation(BaseModel):
    expected: float = Field(default=0, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    negotiable: bool = True

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class LocationPreference(BaseModel):
    current: str = ""
    willing_to_relocate: bool = False
    preferred_locations: List[str] = Field(default_factory=list)


class CandidateProfile(BaseModel):
    id: str = Field(default_factory=new_id)
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    experience: Experience = Field(default_factory=Experience)
    skills: List[SkillEntry] = Field(default_factory=list)
    education: List[EducationEntry] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    availability: Availability = Field(default_factory=Availability)
    salary: SalaryExpectation = Field(default_factory=SalaryExpectation)
    location: LocationPreference = Field(default_factory=LocationPreference)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    last_updated: datetime = Field(default_factory=datetime.now)


class ProfileUpdate(BaseModel):
    """
    Partial candidate profile. Only fields that are explicitly set
    (``model_fields_set``) and not None take part in a merge.
    """
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    experience: Optional[Experience] = None
    skills: Optional[List[SkillEntry]] = None
    education: Optional[List[EducationEntry]] = None
    interests: Optional[List[str]] = None
    availability: Optional[Availability] = None
    salary: Optional[SalaryExpectation] = None
    location: Optional[LocationPreference] = None

    def provided_fields(self) -> List[str]:
        return [name for name in self.model_fields_set if getattr(self, name) is not None]

    def is_empty(self) -> bool:
        return not self.provided_fields()


# ============================================================================
# Messages and sessions
# ============================================================================

class MessageMetadata(BaseModel):
    extracted_info: Optional[Dict[str, Any]] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    processing_time_ms: Optional[float] = None
    stage: Optional[ConversationStage] = None
    fallback: bool = False


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    content: str = Field(..., min_length=1, max_length=2000)
    role: MessageRole
    timestamp: datetime = Field(default_factory=datetime.now)
    session_id: str
    metadata: Optional[MessageMetadata] = None


DEFAULT_SESSION_LIFETIME = timedelta(days=7)


class ConversationSession(BaseModel):
    id: str = Field(default_factory=new_id)
    messages: List[ChatMessage] = Field(default_factory=list)
    candidate_profile: CandidateProfile = Field(default_factory=CandidateProfile)
    job_context: JobPosting
    status: SessionStatus = SessionStatus.ACTIVE
    stage: ConversationStage = ConversationStage.GREETING
    version: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    expires_at: datetime = Field(default_factory=lambda: datetime.now() + DEFAULT_SESSION_LIFETIME)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def user_messages(self) -> List[ChatMessage]:
        return [m for m in self.messages if m.role == MessageRole.USER]
