# Core module initialization
# Configuration, errors, logging, middleware and service wiring

from .config import settings, get_settings
from .exceptions import (
    AppException,
    ValidationError,
    NotFoundError,
    SessionNotFoundError,
    JobNotFoundError,
    ConflictError,
    SessionInactiveError,
    VersionConflictError,
    LowConfidenceError,
    RateLimitError,
    LLMProviderError,
    ConversationProcessingError,
)
from .logging import get_logger, setup_logging, PerformanceLogger
from .middleware import TimingMiddleware, RateLimitMiddleware, setup_middleware

__all__ = [
    # Config
    'settings',
    'get_settings',

    # Exceptions
    'AppException',
    'ValidationError',
    'NotFoundError',
    'SessionNotFoundError',
    'JobNotFoundError',
    'ConflictError',
    'SessionInactiveError',
    'VersionConflictError',
    'LowConfidenceError',
    'RateLimitError',
    'LLMProviderError',
    'ConversationProcessingError',

    # Logging
    'get_logger',
    'setup_logging',
    'PerformanceLogger',

    # Middleware
    'TimingMiddleware',
    'RateLimitMiddleware',
    'setup_middleware',
]
