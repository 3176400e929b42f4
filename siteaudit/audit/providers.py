"""AI provider abstraction: one implementation per vendor behind a common interface.

Every provider exposes the same three operations:

``validate()``
    Cheap round trip proving the credential works.
``analyze(page, all_pages, topic_cluster)``
    Structured on-page analysis → :class:`AnalysisResult`.
``generate(page, analysis, serp, ...)``
    Rewrite suggestions → ``list[Suggestion]``.  Length rules are *requested*
    here but enforced by :mod:`siteaudit.audit.reflexion`.

Prompt building, JSON decoding and schema validation are shared in
:class:`AIProvider`; a vendor only implements ``_complete(system, prompt)``.
Rate-limit responses surface as :class:`~siteaudit.errors.RateLimitError` so
the scheduler can cool the worker down.

Vendors
-------
``openai`` / ``openrouter`` / ``groq``
    LangChain ``ChatOpenAI`` against each vendor's OpenAI-compatible API.
``ollama``
    LangChain ``ChatOllama`` against a local Ollama server.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from siteaudit.audit import prompts
from siteaudit.audit.models import (
    AnalysisResult,
    ClusterPage,
    SerpResult,
    Suggestion,
    SuggestionBatch,
)
from siteaudit.config import settings
from siteaudit.crawler.models import PageRecord
from siteaudit.errors import GenerationError, ProviderConfigError, RateLimitError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_RATE_LIMIT_MARKERS = ("rate limit", "ratelimit", "rate_limit", "too many requests")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class ProviderConfig:
    """One credential entry; each becomes one scheduler worker."""

    provider: str
    api_key: str = ""
    model: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])


def parse_credentials(raw: str) -> list[ProviderConfig]:
    """Parse ``provider:api_key[:model]`` entries separated by commas.

    ``ollama`` entries may omit the key, e.g. ``ollama::llama3``.

    Raises:
        ProviderConfigError: For an unknown provider or a missing key.
    """
    configs: list[ProviderConfig] = []
    for index, entry in enumerate(e.strip() for e in raw.split(",")):
        if not entry:
            continue
        parts = entry.split(":", 2)
        provider = parts[0].strip().lower()
        api_key = parts[1].strip() if len(parts) > 1 else ""
        model = parts[2].strip() if len(parts) > 2 and parts[2].strip() else None
        if provider not in PROVIDERS:
            raise ProviderConfigError(
                f"Unknown provider {provider!r} in credential #{index + 1}. "
                f"Use one of: {', '.join(sorted(PROVIDERS))}"
            )
        if PROVIDERS[provider].requires_key and not api_key:
            raise ProviderConfigError(f"Credential #{index + 1} ({provider}) has no API key.")
        configs.append(ProviderConfig(provider=provider, api_key=api_key, model=model, id=f"{provider}-{index + 1}"))
    return configs


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_rate_limit(exc: BaseException) -> bool:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(getattr(exc, "response", None), "status_code", None)
    if status == 429:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


def parse_json_response(text: str) -> Any:
    """Decode a model reply into JSON, tolerating code fences and chatter.

    Raises:
        GenerationError: If no JSON value can be recovered.
    """
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = cleaned.find(opener), cleaned.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start : end + 1])
            except json.JSONDecodeError:
                continue
    raise GenerationError(f"The AI returned invalid JSON: {text[:200]!r}")


def _message_text(response: Any) -> str:
    content = response.content if hasattr(response, "content") else response
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part) for part in content
        )
    return str(content or "")


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class AIProvider(ABC):
    """Common interface the scheduler and the reflexion loop depend on."""

    vendor: str = ""
    requires_key: bool = True

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.vendor

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"

    @abstractmethod
    async def _complete(self, system: str, prompt: str) -> str:
        """Send one system + user turn and return the raw text reply."""

    async def validate(self) -> bool:
        """Return ``True`` if the credential can complete a trivial request."""
        try:
            await self._complete('Reply with the JSON value "ok".', "ping")
        except RateLimitError:
            # Throttled, but the key itself was accepted.
            return True
        except Exception as exc:  # noqa: BLE001
            logger.warning("[provider] %s credential %s failed validation: %s", self.vendor, self.id, exc)
            return False
        return True

    async def analyze(
        self,
        page: PageRecord,
        all_pages: Sequence[PageRecord] = (),
        topic_cluster: Sequence[ClusterPage] = (),
    ) -> AnalysisResult:
        system = prompts.system_prompt(AnalysisResult.model_json_schema())
        reply = await self._complete(system, prompts.analysis_prompt(page, all_pages, topic_cluster))
        payload = parse_json_response(reply)
        try:
            return AnalysisResult.model_validate(payload)
        except ValidationError as exc:
            raise GenerationError(f"Analysis did not match the schema: {exc}") from exc

    async def generate(
        self,
        page: PageRecord,
        analysis: AnalysisResult,
        serp: Sequence[SerpResult] = (),
        *,
        count: int = 3,
        title_max: int = 60,
        description_max: int = 160,
        target_location: Optional[str] = None,
        feedback: Optional[str] = None,
    ) -> list[Suggestion]:
        system = prompts.system_prompt(SuggestionBatch.model_json_schema())
        prompt = prompts.suggestion_prompt(
            page, analysis, serp, count, title_max, description_max, target_location, feedback
        )
        payload = parse_json_response(await self._complete(system, prompt))
        if isinstance(payload, list):
            payload = {"suggestions": payload}
        try:
            batch = SuggestionBatch.model_validate(payload)
        except ValidationError as exc:
            raise GenerationError(f"Suggestions did not match the schema: {exc}") from exc
        if not batch.suggestions:
            raise GenerationError("The AI returned an empty suggestion list.")
        return batch.suggestions


# ---------------------------------------------------------------------------
# LangChain-backed providers
# ---------------------------------------------------------------------------

class ChatModelProvider(AIProvider):
    """Provider that talks to its vendor through a LangChain chat model."""

    temperature: float = 0.4

    def __init__(self, config: ProviderConfig) -> None:
        super().__init__(config)
        self._llm: Any = None

    @abstractmethod
    def _build_llm(self) -> Any:
        """Return a configured LangChain chat model."""

    def _get_llm(self) -> Any:
        if self._llm is None:
            self._llm = self._build_llm()
        return self._llm

    async def _complete(self, system: str, prompt: str) -> str:
        from langchain_core.messages import HumanMessage, SystemMessage

        llm = self._get_llm()
        try:
            response = await llm.ainvoke([SystemMessage(content=system), HumanMessage(content=prompt)])
        except Exception as exc:
            if _is_rate_limit(exc):
                logger.warning("[provider] %s (%s) is rate-limited: %s", self.vendor, self.id, exc)
                raise RateLimitError(f"Rate limit hit for {self.vendor}: {exc}") from exc
            raise

        text = _message_text(response)
        if not text.strip():
            raise GenerationError("Received an empty response from the AI.")
        return text


class OpenAICompatibleProvider(ChatModelProvider):
    base_url: Optional[str] = None
    default_model: str = ""
    extra_headers: dict[str, str] = {}

    @property
    def model(self) -> str:
        return self.config.model or self.default_model

    def _build_llm(self) -> Any:
        from langchain_openai import ChatOpenAI

        kwargs: dict[str, Any] = {
            "model": self.model,
            "api_key": self.config.api_key,
            "temperature": self.temperature,
            "max_retries": 0,
            "timeout": settings.request_timeout * 4,
        }
        if self.base_url:
            kwargs["base_url"] = self.base_url
        if self.extra_headers:
            kwargs["default_headers"] = dict(self.extra_headers)
        return ChatOpenAI(**kwargs)


class OpenAIProvider(OpenAICompatibleProvider):
    vendor = "openai"

    @property
    def default_model(self) -> str:  # type: ignore[override]
        return settings.openai_chat_model


class OpenRouterProvider(OpenAICompatibleProvider):
    vendor = "openrouter"
    base_url = "https://openrouter.ai/api/v1"
    default_model = "openai/gpt-4o-mini"
    extra_headers = {"HTTP-Referer": "https://github.com/siteaudit", "X-Title": "SiteAudit"}


class GroqProvider(OpenAICompatibleProvider):
    vendor = "groq"
    base_url = "https://api.groq.com/openai/v1"
    default_model = "llama-3.1-8b-instant"


class OllamaProvider(ChatModelProvider):
    vendor = "ollama"
    requires_key = False

    def _build_llm(self) -> Any:
        from langchain_ollama import ChatOllama

        return ChatOllama(
            model=self.config.model or settings.ollama_chat_model,
            base_url=settings.ollama_base_url,
            temperature=self.temperature,
            format="json",
        )


PROVIDERS: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "openrouter": OpenRouterProvider,
    "groq": GroqProvider,
    "ollama": OllamaProvider,
}


def build_provider(config: ProviderConfig) -> AIProvider:
    try:
        cls = PROVIDERS[config.provider]
    except KeyError:
        raise ProviderConfigError(f"Unknown provider {config.provider!r}") from None
    return cls(config)


def providers_from_settings() -> list[AIProvider]:
    """Build one provider per entry of ``settings.ai_credentials``."""
    return [build_provider(c) for c in parse_credentials(settings.ai_credentials)]
