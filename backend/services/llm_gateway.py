"""
Language Model Gateway
======================
Single entry point for reply generation.

- Calls a ``CompletionProvider`` (OpenAI chat completions by default)
- Retries rate-limit, server and timeout failures with exponential backoff
- Never retries invalid-key or quota failures
- Answers with a canned, stage-specific reply when generation fails
- Client-side requests-per-minute throttle
- Usage counters for the status endpoint
"""
import asyncio
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Protocol

import openai
from openai import AsyncOpenAI

from core.exceptions import (
    LLMProviderError,
    ProviderAuthError,
    ProviderQuotaError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderTimeoutError,
)
from models.candidate import ConversationStage

logger = logging.getLogger(__name__)

SYSTEM_MESSAGE = "You are a helpful recruitment assistant. Respond naturally and conversationally."

FALLBACK_CONFIDENCE = 0.3
GENERATED_CONFIDENCE = 0.8

FALLBACK_RESPONSES: Dict[ConversationStage, str] = {
    ConversationStage.GREETING: (
        "Hello! Thank you for your interest in the position. I'm here to help you learn more "
        "about the role and answer any questions you might have. How did you hear about this opportunity?"
    ),
    ConversationStage.INFORMATION_GATHERING: (
        "I'd love to learn more about your background. Could you tell me a bit about your "
        "current role and experience?"
    ),
    ConversationStage.QUALIFICATION_ASSESSMENT: (
        "That's great to hear about your experience. Could you tell me more about your technical "
        "skills and the technologies you work with?"
    ),
    ConversationStage.SALARY_NEGOTIATION: (
        "Thank you for sharing that information. What are your salary expectations for this role?"
    ),
    ConversationStage.WRAPPING_UP: (
        "Thank you for taking the time to speak with me today. Do you have any questions about "
        "the role or the next steps in the process?"
    ),
    ConversationStage.COMPLETED: (
        "Thank you again for your time. Our hiring team will review your details and follow up soon."
    ),
}
DEFAULT_FALLBACK = (
    "I appreciate your message. Could you tell me a bit more about your background and what "
    "interests you about this position?"
)


def fallback_response(stage: Optional[ConversationStage]) -> str:
    try:
        return FALLBACK_RESPONSES.get(ConversationStage(stage), DEFAULT_FALLBACK)
    except ValueError:
        return DEFAULT_FALLBACK


# ============================================================================
# Providers
# ============================================================================

class CompletionProvider(Protocol):
    name: str

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        top_p: float,
        frequency_penalty: float,
        presence_penalty: float,
    ) -> str:
        ...

    async def test_connection(self) -> bool:
        ...

    async def close(self) -> None:
        ...


def map_openai_error(exc: Exception, provider: str = "openai") -> LLMProviderError:
    """Translate an OpenAI SDK exception into the gateway's error types"""
    code = getattr(exc, "code", None)
    details = {"type": type(exc).__name__}
    if code:
        details["code"] = code

    if isinstance(exc, openai.APITimeoutError):
        return ProviderTimeoutError(str(exc), provider, details)
    if code == "invalid_api_key" or isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ProviderAuthError(str(exc), provider, details)
    if code == "insufficient_quota":
        return ProviderQuotaError(str(exc), provider, details)
    if isinstance(exc, openai.RateLimitError):
        return ProviderRateLimitError(str(exc), provider, details)
    if isinstance(exc, openai.APIConnectionError):
        return ProviderServerError(str(exc), provider, details)
    if isinstance(exc, openai.APIStatusError) and exc.status_code >= 500:
        details["status_code"] = exc.status_code
        return ProviderServerError(str(exc), provider, details)
    return LLMProviderError(str(exc), provider, details)


class OpenAIProvider:
    """Chat completions over ``openai.AsyncOpenAI``"""

    name = "openai"

    def __init__(self, api_key: Optional[str], base_url: Optional[str] = None, timeout: float = 30.0):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._client: Optional[AsyncOpenAI] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> AsyncOpenAI:
        if not self.configured:
            raise ProviderAuthError("OPENAI_API_KEY is not configured", self.name)
        if self._client is None:
            # Retries are owned by the gateway
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def complete(self, prompt: str, *, model: str, max_tokens: int, temperature: float,
                       top_p: float, frequency_penalty: float, presence_penalty: float) -> str:
        client = self._get_client()
        try:
            completion = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": SYSTEM_MESSAGE},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
                top_p=top_p,
                frequency_penalty=frequency_penalty,
                presence_penalty=presence_penalty,
            )
        except openai.OpenAIError as exc:
            raise map_openai_error(exc, self.name) from exc

        content = completion.choices[0].message.content if completion.choices else None
        if not content or not content.strip():
            raise ProviderServerError("No response received from OpenAI", self.name)
        return content.strip()

    async def test_connection(self) -> bool:
        try:
            await self._get_client().models.list()
            return True
        except (openai.OpenAIError, LLMProviderError) as exc:
            logger.warning(f"OpenAI connection test failed: {exc}")
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


# ============================================================================
# Gateway
# ============================================================================

def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass
class GatewaySettings:
    model: str = "gpt-4o-mini"
    max_tokens: int = 1000
    temperature: float = 0.7
    top_p: float = 0.9
    frequency_penalty: float = 0.1
    presence_penalty: float = 0.1
    max_attempts: int = 3
    retry_base_delay: float = 1.0
    request_timeout: float = 30.0
    requests_per_minute: int = 0
    propagate_fatal_errors: bool = False

    def __post_init__(self):
        self.max_tokens = int(_clamp(self.max_tokens, 1, 4000))
        self.temperature = _clamp(self.temperature, 0.0, 2.0)
        self.top_p = _clamp(self.top_p, 0.0, 1.0)
        self.max_attempts = max(1, self.max_attempts)
        self.retry_base_delay = max(0.0, self.retry_base_delay)
        self.requests_per_minute = max(0, self.requests_per_minute)

    @classmethod
    def from_settings(cls, settings) -> "GatewaySettings":
        return cls(
            model=settings.openai_model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            top_p=settings.llm_top_p,
            frequency_penalty=settings.llm_frequency_penalty,
            presence_penalty=settings.llm_presence_penalty,
            max_attempts=settings.llm_max_attempts,
            retry_base_delay=settings.llm_retry_base_delay,
            request_timeout=settings.llm_timeout,
            requests_per_minute=settings.llm_requests_per_minute,
            propagate_fatal_errors=settings.llm_propagate_fatal_errors,
        )


@dataclass
class GenerationResult:
    text: str
    fallback: bool = False
    attempts: int = 0
    confidence: float = GENERATED_CONFIDENCE
    error: Optional[str] = None
    latency_ms: float = 0.0


class LLMGateway:
    """
    Reply generation with retry, backoff, throttling and canned fallbacks.

    ``sleep`` and ``clock`` are injectable so tests run without waiting.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        settings: Optional[GatewaySettings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.settings = settings or GatewaySettings()
        self._sleep = sleep
        self._clock = clock
        self._throttle_lock = asyncio.Lock()
        self._recent_calls: Deque[float] = deque()

        self._request_count = 0
        self._attempt_count = 0
        self._error_count = 0
        self._retry_count = 0
        self._fallback_count = 0
        self._total_time = 0.0
        self._last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_model(self, model: str) -> None:
        self.settings.model = model

    def set_max_tokens(self, max_tokens: int) -> None:
        self.settings.max_tokens = int(_clamp(max_tokens, 1, 4000))

    def set_temperature(self, temperature: float) -> None:
        self.settings.temperature = _clamp(temperature, 0.0, 2.0)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def _throttle(self) -> None:
        limit = self.settings.requests_per_minute
        if limit <= 0:
            return
        async with self._throttle_lock:
            now = self._clock()
            while self._recent_calls and now - self._recent_calls[0] >= 60:
                self._recent_calls.popleft()
            if len(self._recent_calls) >= limit:
                wait = 60 - (now - self._recent_calls[0])
                logger.info(f"LLM throttle: waiting {wait:.1f}s")
                await self._sleep(wait)
                self._recent_calls.popleft()
            self._recent_calls.append(self._clock())

    async def _attempt(self, prompt: str) -> str:
        await self._throttle()
        s = self.settings
        try:
            return await asyncio.wait_for(
                self.provider.complete(
                    prompt,
                    model=s.model,
                    max_tokens=s.max_tokens,
                    temperature=s.temperature,
                    top_p=s.top_p,
                    frequency_penalty=s.frequency_penalty,
                    presence_penalty=s.presence_penalty,
                ),
                timeout=s.request_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(f"No reply within {s.request_timeout}s", self.provider.name) from exc

    async def generate(self, prompt: str, stage: Optional[ConversationStage] = None) -> GenerationResult:
        """
        Generate a reply for ``prompt``.

        Returns the model text, or the stage fallback after retries are
        exhausted or a non-retryable provider error. Non-retryable errors
        are raised instead when ``propagate_fatal_errors`` is set.
        Exceptions that are not provider errors propagate unchanged.
        """
        self._request_count += 1
        start = time.perf_counter()
        attempts = 0
        last_error: Optional[LLMProviderError] = None

        for attempt in range(self.settings.max_attempts):
            attempts += 1
            self._attempt_count += 1
            try:
                text = await self._attempt(prompt)
            except LLMProviderError as exc:
                last_error = exc
                self._error_count += 1
                self._last_error = exc.message
                logger.warning(
                    f"LLM attempt {attempts} failed: {exc.error_code} {type(exc).__name__}",
                    extra={"stage": getattr(stage, "value", stage), "retryable": exc.retryable},
                )
                if not exc.retryable:
                    if self.settings.propagate_fatal_errors:
                        self._total_time += time.perf_counter() - start
                        raise
                    break
                if attempt < self.settings.max_attempts - 1:
                    self._retry_count += 1
                    await self._sleep(self.settings.retry_base_delay * (2 ** attempt))
                continue

            elapsed = time.perf_counter() - start
            self._total_time += elapsed
            return GenerationResult(
                text=text,
                attempts=attempts,
                confidence=GENERATED_CONFIDENCE,
                latency_ms=round(elapsed * 1000, 2),
            )

        elapsed = time.perf_counter() - start
        self._total_time += elapsed
        self._fallback_count += 1
        logger.warning(
            f"LLM generation fell back after {attempts} attempt(s)",
            extra={"stage": getattr(stage, "value", stage)},
        )
        return GenerationResult(
            text=fallback_response(stage),
            fallback=True,
            attempts=attempts,
            confidence=FALLBACK_CONFIDENCE,
            error=type(last_error).__name__ if last_error else None,
            latency_ms=round(elapsed * 1000, 2),
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def test_connection(self) -> bool:
        return await self.provider.test_connection()

    def get_status(self) -> Dict[str, Any]:
        avg_ms = (self._total_time / self._request_count * 1000) if self._request_count else 0
        return {
            "provider": self.provider.name,
            "configured": getattr(self.provider, "configured", True),
            "settings": asdict(self.settings),
            "stats": {
                "requests": self._request_count,
                "attempts": self._attempt_count,
                "errors": self._error_count,
                "retries": self._retry_count,
                "fallbacks": self._fallback_count,
                "avg_response_time_ms": round(avg_ms, 2),
                "last_error": self._last_error,
            },
        }

    async def close(self) -> None:
        await self.provider.close()
