"""
Dependency Injection Container
Builds the chat services from settings and exposes them to FastAPI routes
"""
import logging
from typing import Optional

from core.config import Settings, get_settings
from services.conversation_service import ConversationService
from services.extraction_service import ExtractionEngine, get_extraction_engine
from services.job_catalog import JobCatalog, build_default_catalog
from services.llm_gateway import GatewaySettings, LLMGateway, OpenAIProvider
from services.prompt_builder import PromptBuilder
from services.session_manager import SessionManager
from services.session_store import InMemorySessionStore, JsonFileSessionStore, SessionStore

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Centralized service container for dependency injection.
    Services are created lazily on first access.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._store: Optional[SessionStore] = None
        self._job_catalog: Optional[JobCatalog] = None
        self._sessions: Optional[SessionManager] = None
        self._extractor: Optional[ExtractionEngine] = None
        self._gateway: Optional[LLMGateway] = None
        self._conversation: Optional[ConversationService] = None

    @property
    def store(self) -> SessionStore:
        if self._store is None:
            if self.settings.session_store == "json":
                self._store = JsonFileSessionStore(self.settings.session_store_path)
                logger.info(f"Session store: JSON file {self.settings.session_store_path}")
            else:
                self._store = InMemorySessionStore()
                logger.info("Session store: in-memory")
        return self._store

    @property
    def job_catalog(self) -> JobCatalog:
        if self._job_catalog is None:
            self._job_catalog = build_default_catalog(self.settings.default_job_id)
        return self._job_catalog

    @property
    def sessions(self) -> SessionManager:
        if self._sessions is None:
            self._sessions = SessionManager(
                self.store,
                self.job_catalog,
                expiry_hours=self.settings.session_expiry_hours,
            )
        return self._sessions

    @property
    def extractor(self) -> ExtractionEngine:
        if self._extractor is None:
            self._extractor = get_extraction_engine()
        return self._extractor

    @property
    def gateway(self) -> LLMGateway:
        if self._gateway is None:
            provider = OpenAIProvider(
                api_key=self.settings.openai_api_key,
                base_url=self.settings.openai_base_url,
                timeout=self.settings.llm_timeout,
            )
            if not provider.configured:
                logger.warning("OPENAI_API_KEY not set, chat replies will use fallback responses")
            self._gateway = LLMGateway(provider, GatewaySettings.from_settings(self.settings))
        return self._gateway

    @property
    def conversation(self) -> ConversationService:
        if self._conversation is None:
            self._conversation = ConversationService(
                self.sessions,
                self.extractor,
                self.gateway,
                PromptBuilder(
                    history_limit=self.settings.prompt_history_limit,
                    max_chars=self.settings.prompt_max_chars,
                ),
            )
        return self._conversation

    async def close(self) -> None:
        if self._gateway is not None:
            await self._gateway.close()


# Singleton instance
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """Get the service container singleton"""
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def set_container(container: Optional[ServiceContainer]) -> None:
    """Swap the container, used by tests to inject fakes"""
    global _container
    _container = container


# FastAPI dependency functions
def get_session_manager() -> SessionManager:
    return get_container().sessions


def get_conversation_service() -> ConversationService:
    return get_container().conversation


def get_job_catalog() -> JobCatalog:
    return get_container().job_catalog


def get_llm_gateway() -> LLMGateway:
    return get_container().gateway
