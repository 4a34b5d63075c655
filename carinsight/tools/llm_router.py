"""
Resilient chat-completion routing across LLM providers.

Providers are tried in a fixed priority order. Each has its own circuit
breaker: after ``failure_threshold`` consecutive failures the provider is
skipped for ``reset_timeout_sec``, then a single trial call decides whether
the circuit closes again. Timeouts count as failures. When every provider
is open or failing, a static apology is returned instead of raising.
"""

import asyncio
import logging
import os
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol, TypedDict

from google import genai
from google.genai import types as genai_types
from openai import AsyncOpenAI

from carinsight.config import settings

logger = logging.getLogger(__name__)

NO_PROVIDER = "no-provider"
FALLBACK_TEXT = (
    "Desculpe, estou com dificuldades técnicas no momento. "
    "Por favor, tente novamente em alguns instantes."
)


class ChatMessage(TypedDict):
    """Role-tagged message: role is 'system', 'user' or 'assistant'."""

    role: str
    content: str


@dataclass
class CompletionOptions:
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class CompletionResult:
    text: str
    provider: str

    @property
    def is_fallback(self) -> bool:
        return self.provider == NO_PROVIDER


class ProviderError(Exception):
    """Raised by a provider when it cannot produce a completion."""


class ChatProvider(Protocol):
    name: str

    async def complete(
        self, messages: list[ChatMessage], options: CompletionOptions
    ) -> str:
        ...


class OpenAIChatProvider:
    """Chat completions through the OpenAI API."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model or settings.model.openai_model
        if client is None:
            api_key = api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ProviderError("Missing OPENAI_API_KEY in environment or .env")
            client = AsyncOpenAI(api_key=api_key)
        self._client = client

    async def complete(
        self, messages: list[ChatMessage], options: CompletionOptions
    ) -> str:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[dict(m) for m in messages],
            temperature=(
                settings.model.llm_temperature
                if options.temperature is None else options.temperature
            ),
            max_tokens=options.max_tokens or settings.model.llm_max_tokens,
        )
        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise ProviderError("OpenAI returned an empty response.")
        return text.strip()


class GeminiChatProvider:
    """Chat completions through the Gemini API."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[genai.Client] = None,
    ) -> None:
        self.model = model or settings.model.gemini_model
        if client is None:
            api_key = api_key or os.getenv("GEMINI_API_KEY")
            if not api_key:
                raise ProviderError("Missing GEMINI_API_KEY in environment or .env")
            client = genai.Client(api_key=api_key)
        self._client = client

    async def complete(
        self, messages: list[ChatMessage], options: CompletionOptions
    ) -> str:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        contents = [
            genai_types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[genai_types.Part(text=m["content"])],
            )
            for m in messages
            if m["role"] != "system"
        ]
        config = genai_types.GenerateContentConfig(
            system_instruction=system or None,
            temperature=(
                settings.model.llm_temperature
                if options.temperature is None else options.temperature
            ),
            max_output_tokens=options.max_tokens or settings.model.llm_max_tokens,
        )
        response = await self._client.aio.models.generate_content(
            model=self.model, contents=contents, config=config
        )
        text = getattr(response, "text", None)
        if not text:
            raise ProviderError("Gemini returned an empty response.")
        return text.strip()


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Consecutive-failure circuit breaker for one provider."""

    def __init__(
        self,
        failure_threshold: int,
        reset_timeout_sec: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_timeout_sec = reset_timeout_sec
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.reset_timeout_sec
        ):
            self._state = CircuitState.HALF_OPEN
        return self._state

    @property
    def failures(self) -> int:
        return self._failures

    def allow_request(self) -> bool:
        return self.state != CircuitState.OPEN

    def record_success(self) -> None:
        self._failures = 0
        self._opened_at = None
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failures += 1
        if self.state == CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()


@dataclass
class ProviderFailure:
    """An observed provider failure, kept for diagnostics."""
    provider: str
    error: str
    at: float = field(default_factory=time.time)


class LLMRouter:
    """Dispatches completions to the first healthy provider."""

    def __init__(
        self,
        providers: list[ChatProvider],
        failure_threshold: Optional[int] = None,
        reset_timeout_sec: Optional[float] = None,
        request_timeout_sec: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        cfg = settings.router
        self._providers = list(providers)
        self._timeout = request_timeout_sec or settings.model.request_timeout_sec
        self.breakers: dict[str, CircuitBreaker] = {
            p.name: CircuitBreaker(
                failure_threshold or cfg.failure_threshold,
                reset_timeout_sec or cfg.reset_timeout_sec,
                clock,
            )
            for p in self._providers
        }
        self.failures: deque[ProviderFailure] = deque(maxlen=100)

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self._providers]

    def is_available(self) -> bool:
        return any(self.breakers[p.name].allow_request() for p in self._providers)

    async def complete(
        self,
        messages: list[ChatMessage],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        """Return the first successful completion, or the static fallback."""
        options = options or CompletionOptions()
        for provider in self._providers:
            breaker = self.breakers[provider.name]
            if not breaker.allow_request():
                logger.debug("Circuit open for %s, skipping", provider.name)
                continue
            try:
                text = await asyncio.wait_for(
                    provider.complete(messages, options), timeout=self._timeout
                )
            except asyncio.TimeoutError:
                self._record_failure(provider.name, f"timed out after {self._timeout}s")
                continue
            except Exception as e:
                self._record_failure(provider.name, str(e) or type(e).__name__)
                continue
            breaker.record_success()
            return CompletionResult(text=text, provider=provider.name)

        logger.warning("All LLM providers unavailable, using fallback response")
        return CompletionResult(text=FALLBACK_TEXT, provider=NO_PROVIDER)

    def _record_failure(self, name: str, error: str) -> None:
        breaker = self.breakers[name]
        breaker.record_failure()
        self.failures.append(ProviderFailure(provider=name, error=error))
        logger.warning("LLM provider %s failed: %s", name, error)
        if breaker.state == CircuitState.OPEN:
            logger.warning("Circuit breaker opened for %s", name)


def build_default_providers() -> list[ChatProvider]:
    """Instantiate every configured provider that has credentials, in priority order."""
    factories: dict[str, Callable[[], ChatProvider]] = {
        "openai": OpenAIChatProvider,
        "gemini": GeminiChatProvider,
    }
    providers: list[ChatProvider] = []
    for name in settings.router.provider_order:
        factory = factories.get(name)
        if factory is None:
            logger.warning("Unknown LLM provider in LLM_PROVIDER_ORDER: %s", name)
            continue
        try:
            providers.append(factory())
        except ProviderError as e:
            logger.info("LLM provider %s not configured: %s", name, e)
    return providers
