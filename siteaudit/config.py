"""Centralised settings for the site audit toolkit.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # HTTP / crawler
    # ------------------------------------------------------------------
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "15.0"))
    )
    user_agent: str = field(
        default_factory=lambda: os.environ.get(
            "USER_AGENT",
            "Mozilla/5.0 (compatible; SiteAudit-Bot/1.0; +https://github.com/siteaudit)",
        )
    )
    fetch_max_retries: int = field(
        default_factory=lambda: int(os.environ.get("FETCH_MAX_RETRIES", "3"))
    )
    fetch_backoff_base: float = field(
        default_factory=lambda: float(os.environ.get("FETCH_BACKOFF_BASE", "1.0"))
    )
    fetch_backoff_jitter: float = field(
        default_factory=lambda: float(os.environ.get("FETCH_BACKOFF_JITTER", "0.5"))
    )
    validation_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("VALIDATION_CONCURRENCY", "50"))
    )
    fetch_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("FETCH_CONCURRENCY", "30"))
    )
    max_content_chars: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONTENT_CHARS", "25000"))
    )

    # ------------------------------------------------------------------
    # Job scheduler
    # ------------------------------------------------------------------
    scheduler_max_retries: int = field(
        default_factory=lambda: int(os.environ.get("SCHEDULER_MAX_RETRIES", "2"))
    )
    scheduler_cooldown: float = field(
        default_factory=lambda: float(os.environ.get("SCHEDULER_COOLDOWN", "60.0"))
    )
    topic_cluster_limit: int = field(
        default_factory=lambda: int(os.environ.get("TOPIC_CLUSTER_LIMIT", "10"))
    )

    # ------------------------------------------------------------------
    # Suggestion generation
    # ------------------------------------------------------------------
    reflexion_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("REFLEXION_MAX_ATTEMPTS", "3"))
    )
    suggestion_count: int = field(
        default_factory=lambda: int(os.environ.get("SUGGESTION_COUNT", "3"))
    )
    title_max_length: int = field(
        default_factory=lambda: int(os.environ.get("TITLE_MAX_LENGTH", "60"))
    )
    description_max_length: int = field(
        default_factory=lambda: int(os.environ.get("DESCRIPTION_MAX_LENGTH", "160"))
    )

    # ------------------------------------------------------------------
    # AI providers
    # ------------------------------------------------------------------
    # Comma separated ``provider:api_key[:model]`` entries, one per worker.
    ai_credentials: str = field(
        default_factory=lambda: os.environ.get("AI_CREDENTIALS", "")
    )
    openai_chat_model: str = field(
        default_factory=lambda: os.environ.get("OPENAI_CHAT_MODEL", "gpt-4o-mini")
    )
    ollama_base_url: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    )
    ollama_chat_model: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_CHAT_MODEL", "ministral-3:8b")
    )

    # ------------------------------------------------------------------
    # SERP competitor lookup
    # ------------------------------------------------------------------
    brave_api_key: str = field(
        default_factory=lambda: os.environ.get("BRAVE_API_KEY", "")
    )
    searxng_base_url: str = field(
        default_factory=lambda: os.environ.get("SEARXNG_BASE_URL", "https://searx.be")
    )
    search_provider_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SEARCH_PROVIDER_TIMEOUT", "20.0"))
    )
    searxng_instance_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SEARXNG_INSTANCE_TIMEOUT", "5.0"))
    )
    search_retry_base_delay: float = field(
        default_factory=lambda: float(os.environ.get("SEARCH_RETRY_BASE_DELAY", "2.0"))
    )
    search_retry_max: int = field(
        default_factory=lambda: int(os.environ.get("SEARCH_RETRY_MAX", "2"))
    )
    serp_max_results: int = field(
        default_factory=lambda: int(os.environ.get("SERP_MAX_RESULTS", "7"))
    )

    # ------------------------------------------------------------------
    # WordPress sync
    # ------------------------------------------------------------------
    wp_site_url: str = field(
        default_factory=lambda: os.environ.get("WP_SITE_URL", "")
    )
    wp_username: str = field(
        default_factory=lambda: os.environ.get("WP_USERNAME", "")
    )
    wp_app_password: str = field(
        default_factory=lambda: os.environ.get("WP_APP_PASSWORD", "")
    )
    wp_timeout: float = field(
        default_factory=lambda: float(os.environ.get("WP_TIMEOUT", "30.0"))
    )
    sync_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("SYNC_CONCURRENCY", "5"))
    )

    @property
    def default_headers(self) -> dict[str, str]:
        """Headers sent with every crawler request."""
        return {"User-Agent": self.user_agent}


# Module-level singleton: import this everywhere:
#   from siteaudit.config import settings
settings = Settings()
