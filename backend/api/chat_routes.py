"""
Chat API Routes
Sessions, chat turns, candidate profiles, job postings and LLM status
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from core.dependencies import (
    get_conversation_service,
    get_job_catalog,
    get_llm_gateway,
    get_session_manager,
)
from core.exceptions import SessionNotFoundError
from models.candidate import JobPosting
from models.schemas import (
    ChatRequest,
    ChatResponse,
    CleanupResponse,
    CreateSessionRequest,
    ExtendSessionRequest,
    JobListResponse,
    ProfileAnalysisRequest,
    ProfileFormat,
    ProfileUpdateRequest,
    ProfileUpdateResponse,
    ResetSessionRequest,
    SessionResponse,
)
from services.conversation_service import ConversationService
from services.job_catalog import JobCatalog
from services.llm_gateway import LLMGateway
from services.profile_service import analyze_profile_fit, format_profile
from services.session_manager import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Recruitment Chat"])


# ============================================================================
# SESSION ENDPOINTS
# ============================================================================

@router.post("/session", response_model=SessionResponse, status_code=201)
async def create_session(
    request: Optional[CreateSessionRequest] = None,
    sessions: SessionManager = Depends(get_session_manager),
):
    """Start a new conversation, optionally for a specific job and with seed profile data"""
    request = request or CreateSessionRequest()
    session = sessions.create_session(seed_profile=request.profile, job_id=request.job_id)
    return SessionResponse.from_session(session, sessions.clock())


@router.get("/session/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    include_messages: bool = Query(default=True),
    sessions: SessionManager = Depends(get_session_manager),
):
    session = sessions.require_session(session_id)
    return SessionResponse.from_session(session, sessions.clock(), include_messages=include_messages)


@router.delete("/session/{session_id}")
async def delete_session(session_id: str, sessions: SessionManager = Depends(get_session_manager)):
    if not sessions.delete_session(session_id):
        raise SessionNotFoundError(session_id)
    return {"success": True, "session_id": session_id}


@router.post("/session/{session_id}/extend", response_model=SessionResponse)
async def extend_session(
    session_id: str,
    request: Optional[ExtendSessionRequest] = None,
    sessions: SessionManager = Depends(get_session_manager),
):
    request = request or ExtendSessionRequest()
    session = sessions.extend_session(session_id, hours=request.hours)
    return SessionResponse.from_session(session, sessions.clock(), include_messages=False)


@router.post("/session/{session_id}/complete", response_model=SessionResponse)
async def complete_session(session_id: str, sessions: SessionManager = Depends(get_session_manager)):
    session = sessions.complete_session(session_id)
    return SessionResponse.from_session(session, sessions.clock(), include_messages=False)


@router.post("/session/{session_id}/reset", response_model=SessionResponse)
async def reset_session(
    session_id: str,
    request: Optional[ResetSessionRequest] = None,
    sessions: SessionManager = Depends(get_session_manager),
):
    request = request or ResetSessionRequest()
    session = sessions.reset_conversation(session_id, keep_profile=request.keep_profile)
    return SessionResponse.from_session(session, sessions.clock())


@router.get("/session/{session_id}/export")
async def export_session(session_id: str, sessions: SessionManager = Depends(get_session_manager)):
    return sessions.export_session(session_id)


@router.post("/session/import", response_model=SessionResponse, status_code=201)
async def import_session(payload: Dict[str, Any], sessions: SessionManager = Depends(get_session_manager)):
    session = sessions.import_session(payload)
    return SessionResponse.from_session(session, sessions.clock())


@router.post("/sessions/cleanup", response_model=CleanupResponse)
async def cleanup_sessions(sessions: SessionManager = Depends(get_session_manager)):
    removed = sessions.cleanup_expired()
    return CleanupResponse(removed=removed, remaining=len(sessions.get_all_sessions()))


@router.get("/sessions/stats")
async def session_stats(sessions: SessionManager = Depends(get_session_manager)):
    return sessions.get_statistics()


# ============================================================================
# CHAT ENDPOINTS
# ============================================================================

@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, conversation: ConversationService = Depends(get_conversation_service)):
    """
    Process one user message: extract profile data, advance the stage
    and generate the assistant reply.
    """
    turn = await conversation.process_message(request.session_id, request.message)
    return ChatResponse(
        session_id=turn.session_id,
        message=turn.assistant_message,
        stage=turn.stage,
        previous_stage=turn.previous_stage,
        profile=turn.profile,
        extracted_info=turn.extracted_info,
        confidence=turn.confidence,
        fallback_used=turn.fallback_used,
        suggestions=turn.suggestions,
        processing_time_ms=turn.processing_time_ms,
    )


@router.get("/chat/{session_id}/analysis")
async def conversation_analysis(session_id: str, conversation: ConversationService = Depends(get_conversation_service)):
    return conversation.analyze_conversation(session_id)


@router.get("/chat/{session_id}/metrics")
async def conversation_metrics(session_id: str, conversation: ConversationService = Depends(get_conversation_service)):
    return conversation.conversation_metrics(session_id)


# ============================================================================
# CANDIDATE PROFILE ENDPOINTS
# ============================================================================

@router.get("/candidate-profile")
async def get_candidate_profile(
    session_id: str = Query(..., min_length=1),
    format: ProfileFormat = Query(default=ProfileFormat.FULL),
    include_confidence: bool = Query(default=False),
    sessions: SessionManager = Depends(get_session_manager),
):
    session = sessions.require_session(session_id)
    return {
        "success": True,
        "session_id": session_id,
        "profile": format_profile(session.candidate_profile, format.value, include_confidence),
    }


@router.put("/candidate-profile", response_model=ProfileUpdateResponse)
async def update_candidate_profile(
    request: ProfileUpdateRequest,
    conversation: ConversationService = Depends(get_conversation_service),
):
    result = conversation.update_profile(
        request.session_id,
        request.profile,
        strategy=request.merge_strategy,
        confidence_threshold=request.confidence_threshold,
        expected_version=request.expected_version,
    )
    return ProfileUpdateResponse(
        profile=result.profile,
        confidence=result.confidence,
        changes=result.changes,
        warnings=result.warnings,
    )


@router.post("/candidate-profile/analyze")
async def analyze_candidate_profile(
    request: ProfileAnalysisRequest,
    sessions: SessionManager = Depends(get_session_manager),
    catalog: JobCatalog = Depends(get_job_catalog),
):
    session = sessions.require_session(request.session_id)
    job = catalog.get(request.job_id) if request.job_id else session.job_context
    return {
        "success": True,
        "session_id": request.session_id,
        "job_id": job.id,
        "analysis": analyze_profile_fit(session.candidate_profile, job),
    }


# ============================================================================
# JOB & LLM ENDPOINTS
# ============================================================================

@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(catalog: JobCatalog = Depends(get_job_catalog)):
    jobs = catalog.list()
    return JobListResponse(jobs=jobs, total=len(jobs))


@router.get("/jobs/{job_id}", response_model=JobPosting)
async def get_job(job_id: str, catalog: JobCatalog = Depends(get_job_catalog)):
    return catalog.get(job_id)


@router.get("/llm/status")
async def llm_status(gateway: LLMGateway = Depends(get_llm_gateway)):
    return gateway.get_status()


@router.post("/llm/test")
async def llm_test(gateway: LLMGateway = Depends(get_llm_gateway)):
    connected = await gateway.test_connection()
    return {"connected": connected, "provider": gateway.provider.name}
