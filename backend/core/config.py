"""
Application Configuration with Type Safety and Validation
Following 12-factor app principles
"""
from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """
    Application settings with environment variable support.
    All settings are validated and typed.
    """

    # Application
    app_name: str = "Recruitment Chatbot API"
    app_version: str = "1.0.0"
    debug: bool = Field(default=True, description="Enable debug mode")
    environment: str = Field(default="development", description="Environment name")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Language model (OpenAI)
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_base_url: Optional[str] = Field(default=None, description="Override for OpenAI-compatible endpoints")
    openai_model: str = Field(default="gpt-4o-mini", description="Chat completion model")
    llm_max_tokens: int = Field(default=1000, description="Max tokens per reply")
    llm_temperature: float = Field(default=0.7, description="Sampling temperature")
    llm_top_p: float = Field(default=0.9)
    llm_frequency_penalty: float = Field(default=0.1)
    llm_presence_penalty: float = Field(default=0.1)
    llm_timeout: float = Field(default=30.0, description="Per-attempt timeout in seconds")
    llm_max_attempts: int = Field(default=3, description="Attempts for transient provider errors")
    llm_retry_base_delay: float = Field(default=1.0, description="Backoff base delay in seconds")
    llm_requests_per_minute: int = Field(default=60, description="Client-side throttle, 0 disables")
    llm_propagate_fatal_errors: bool = Field(
        default=False,
        description="Raise on invalid-key/quota errors instead of answering with a fallback"
    )

    # Sessions
    session_expiry_hours: int = Field(default=7 * 24, description="Lifetime of a new session")
    session_store: str = Field(default="memory", description="memory or json")
    session_store_path: str = Field(default="./chat_sessions.json", description="JSON store location")
    session_cleanup_interval_minutes: int = Field(default=30, description="Expired-session sweep interval, 0 disables")
    default_job_id: str = Field(default="se-2024-001", description="Job used when a session names none")

    # Prompt bounds
    prompt_history_limit: int = Field(default=6, description="Recent messages rendered into the prompt")
    prompt_max_chars: int = Field(default=12000, description="Hard cap on prompt length")

    # CORS - Use str type to avoid pydantic-settings JSON parsing
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Allowed CORS origins (comma-separated)"
    )

    # Rate Limiting
    rate_limit_requests: int = Field(default=100, description="Requests per window per client")
    rate_limit_window: int = Field(default=60, description="Rate limit window in seconds")

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False, description="JSON log lines instead of colored output")
    log_file: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list"""
        return [origin.strip() for origin in self.cors_origins.split(',') if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.
    Uses lru_cache to ensure singleton pattern.
    """
    return Settings()


# Convenience alias
settings = get_settings()
