"""
Custom Exception Classes with Structured Error Handling
Enables consistent error responses across the API
"""
from typing import Any, Dict, Optional
from fastapi import Request
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class AppException(Exception):
    """
    Base application exception.
    All custom exceptions should inherit from this.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(AppException):
    """Raised when input validation fails"""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details={"field": field, **(details or {})}
        )


class NotFoundError(AppException):
    """Raised when a resource is not found"""

    def __init__(self, resource: str, identifier: Optional[str] = None, error_code: str = "NOT_FOUND",
                 details: Optional[Dict] = None):
        super().__init__(
            message=f"{resource} not found" + (f": {identifier}" if identifier else ""),
            status_code=404,
            error_code=error_code,
            details={"resource": resource, "identifier": identifier, **(details or {})}
        )


class SessionNotFoundError(NotFoundError):
    """Session is missing, expired or structurally invalid"""

    def __init__(self, session_id: str, reason: str = "missing"):
        super().__init__(
            "Session",
            session_id,
            error_code="SESSION_NOT_FOUND",
            details={"reason": reason}
        )
        self.reason = reason


class JobNotFoundError(NotFoundError):
    """Raised for unknown job posting ids"""

    def __init__(self, job_id: str):
        super().__init__("Job posting", job_id, error_code="JOB_NOT_FOUND")


class ConflictError(AppException):
    """Raised when a request conflicts with the current state of a resource"""

    def __init__(self, message: str, error_code: str = "CONFLICT", details: Optional[Dict] = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code=error_code,
            details=details
        )


class SessionInactiveError(ConflictError):
    """Session exists but no longer accepts messages"""

    def __init__(self, session_id: str, status: str):
        super().__init__(
            f"Session {session_id} is {status}",
            error_code="SESSION_INACTIVE",
            details={"session_id": session_id, "status": status}
        )


class VersionConflictError(ConflictError):
    """Optimistic version check failed"""

    def __init__(self, session_id: str, expected: int, actual: int):
        super().__init__(
            f"Session {session_id} was modified concurrently",
            error_code="VERSION_CONFLICT",
            details={"session_id": session_id, "expected_version": expected, "current_version": actual}
        )


class LowConfidenceError(ConflictError):
    """Profile confidence fell below a caller-supplied threshold"""

    def __init__(self, confidence: float, threshold: float):
        super().__init__(
            "Profile confidence below threshold",
            error_code="LOW_CONFIDENCE",
            details={"current_confidence": round(confidence, 4), "threshold": threshold}
        )
        self.confidence = confidence
        self.threshold = threshold


class RateLimitError(AppException):
    """Raised when rate limit is exceeded"""

    def __init__(self, retry_after: int = 60):
        super().__init__(
            message="Rate limit exceeded. Please try again later.",
            status_code=429,
            error_code="RATE_LIMIT_EXCEEDED",
            details={"retry_after_seconds": retry_after}
        )


class LLMProviderError(AppException):
    """Raised when the language model provider fails"""

    retryable = False

    def __init__(self, message: str, provider: str = "openai", details: Optional[Dict] = None):
        super().__init__(
            message=f"LLM provider error: {message}",
            status_code=502,
            error_code="LLM_ERROR",
            details={"provider": provider, "retryable": self.retryable, **(details or {})}
        )


class ProviderRateLimitError(LLMProviderError):
    retryable = True


class ProviderServerError(LLMProviderError):
    retryable = True


class ProviderTimeoutError(LLMProviderError):
    retryable = True


class ProviderAuthError(LLMProviderError):
    """Invalid or missing credentials"""


class ProviderQuotaError(LLMProviderError):
    """Account quota exhausted"""


class ConversationProcessingError(AppException):
    """Raised when a chat turn cannot be completed"""

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(
            message=f"Conversation processing failed: {message}",
            status_code=500,
            error_code="CONVERSATION_ERROR",
            details={"session_id": session_id}
        )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Global exception handler for AppException and subclasses.
    Provides consistent error response format.
    """
    log = logger.warning if exc.status_code >= 500 else logger.info
    log(
        f"AppException: {exc.error_code} - {exc.message}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
            "details": exc.details
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global handler for unhandled exceptions.
    Logs full traceback and returns sanitized response.
    """
    logger.exception(
        f"Unhandled exception: {str(exc)}",
        extra={"path": request.url.path}
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "error_code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again.",
            "details": {}
        }
    )
