"""Competitor SERP snippets with automatic provider failover.

Provider priority (highest to lowest):
  1. Brave Search: REST API with titles and descriptions; requires BRAVE_API_KEY.
  2. SearXNG: free metasearch, rotates multiple public instances.
  3. DuckDuckGo: free, scraping-based; retried with exponential backoff.

All providers share a common interface:
``await search(query, max_results) -> list[SerpResult]``.  ``fetch_serp_data``
tries each in order and returns the first non-empty result set, or ``[]``
when every provider fails.  SERP context is an enrichment: it never raises.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from duckduckgo_search import DDGS
from duckduckgo_search.exceptions import DuckDuckGoSearchException, RatelimitException

from siteaudit.audit.models import SerpResult
from siteaudit.config import settings

logger = logging.getLogger(__name__)

_SEARXNG_FALLBACK_INSTANCES = [
    "https://search.bus-hit.me",
    "https://searx.be",
    "https://paulgo.io",
    "https://searx.tiekoetter.com",
]

_BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)


def _compose_query(query: str, location: Optional[str] = None) -> str:
    """Strip wrapping quotes and append the target location, if any."""
    q = query.strip()
    if q.startswith('"') and q.endswith('"') and len(q) > 2:
        q = q[1:-1].strip()
    if location:
        q = f"{q} {location.strip()}"
    return q


def _append_unique(results: list[SerpResult], item: SerpResult) -> None:
    if item.url and all(r.url != item.url for r in results):
        results.append(item)


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class SerpProvider(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""

    @abstractmethod
    async def search(self, query: str, max_results: int = 7) -> list[SerpResult]:
        """Return competitor snippets.  Must return ``[]`` (not raise) on failure."""


# ---------------------------------------------------------------------------
# Brave Search provider
# ---------------------------------------------------------------------------

class BraveSerpProvider(SerpProvider):
    """Brave Search REST API.  Skipped if ``settings.brave_api_key`` is empty."""

    endpoint = "https://api.search.brave.com/res/v1/web/search"

    @property
    def name(self) -> str:
        return "Brave"

    async def search(self, query: str, max_results: int = 7) -> list[SerpResult]:
        api_key = settings.brave_api_key
        if not api_key:
            return []

        try:
            async with httpx.AsyncClient(timeout=settings.search_provider_timeout) as client:
                resp = await client.get(
                    self.endpoint,
                    params={"q": query, "count": max_results},
                    headers={
                        "Accept": "application/json",
                        "X-Subscription-Token": api_key,
                    },
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.info("[serp] Brave request failed: %s", exc)
            return []

        results: list[SerpResult] = []
        for item in data.get("web", {}).get("results", []):
            _append_unique(
                results,
                SerpResult(
                    title=item.get("title", ""),
                    url=item.get("url", ""),
                    description=item.get("description", ""),
                ),
            )
        return results[:max_results]


# ---------------------------------------------------------------------------
# SearXNG provider
# ---------------------------------------------------------------------------

class SearXNGSerpProvider(SerpProvider):
    """Hit a SearXNG JSON endpoint, rotating instances on failure.

    The configured ``settings.searxng_base_url`` goes first.  Each instance
    gets the short ``searxng_instance_timeout`` so dead nodes fail fast.
    """

    @property
    def name(self) -> str:
        return "SearXNG"

    async def _query_instance(
        self,
        client: httpx.AsyncClient,
        base: str,
        query: str,
        max_results: int,
    ) -> list[SerpResult]:
        resp = await client.get(
            f"{base}/search",
            params={"q": query, "format": "json", "engines": "google,bing,brave,duckduckgo"},
            headers={"Accept": "application/json", "User-Agent": _BROWSER_UA},
        )
        resp.raise_for_status()
        results: list[SerpResult] = []
        for item in resp.json().get("results", []):
            _append_unique(
                results,
                SerpResult(
                    title=item.get("title", ""),
                    url=item.get("url") or item.get("href") or "",
                    description=item.get("content", ""),
                ),
            )
            if len(results) >= max_results:
                break
        return results

    async def search(self, query: str, max_results: int = 7) -> list[SerpResult]:
        primary = settings.searxng_base_url.rstrip("/")
        instances = [primary] + [u for u in _SEARXNG_FALLBACK_INSTANCES if u != primary]

        async with httpx.AsyncClient(
            timeout=settings.searxng_instance_timeout, follow_redirects=True
        ) as client:
            for base in instances:
                try:
                    results = await self._query_instance(client, base, query, max_results)
                except (httpx.HTTPError, ValueError) as exc:
                    logger.debug("[serp] SearXNG %s failed: %r", base, exc)
                    continue
                if results:
                    return results
                logger.debug("[serp] SearXNG %s returned 0 results", base)

        logger.info("[serp] all SearXNG instances exhausted")
        return []


# ---------------------------------------------------------------------------
# DuckDuckGo provider (with exponential backoff)
# ---------------------------------------------------------------------------

class DuckDuckGoSerpProvider(SerpProvider):
    """``duckduckgo_search.DDGS`` in a worker thread, retried on rate limit."""

    @property
    def name(self) -> str:
        return "DuckDuckGo"

    @staticmethod
    def _text_search(query: str, max_results: int) -> list[dict]:
        with DDGS() as ddgs:
            return list(ddgs.text(query, max_results=max_results) or [])

    async def search(self, query: str, max_results: int = 7) -> list[SerpResult]:
        base_delay = settings.search_retry_base_delay
        max_retries = settings.search_retry_max

        for attempt in range(max_retries + 1):
            try:
                raw = await asyncio.to_thread(self._text_search, query, max_results)
            except RatelimitException:
                if attempt >= max_retries:
                    logger.info("[serp] DuckDuckGo still rate-limited after %d retries", max_retries)
                    return []
                delay = base_delay * (2 ** attempt)
                logger.info(
                    "[serp] DuckDuckGo rate-limited (attempt %d/%d); retrying in %.0fs",
                    attempt + 1, max_retries, delay,
                )
                await asyncio.sleep(delay)
                continue
            except DuckDuckGoSearchException as exc:
                logger.info("[serp] DuckDuckGo search error: %s", exc)
                return []

            results: list[SerpResult] = []
            for item in raw:
                _append_unique(
                    results,
                    SerpResult(
                        title=item.get("title", ""),
                        url=item.get("href", ""),
                        description=item.get("body", ""),
                    ),
                )
            return results

        return []


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------

class SerpProviderChain:
    """Try providers in order; return the first non-empty result list."""

    def __init__(self, providers: list[SerpProvider]) -> None:
        self._providers = providers

    async def search(self, query: str, max_results: int = 7) -> list[SerpResult]:
        for provider in self._providers:
            try:
                results = await provider.search(query, max_results=max_results)
            except Exception as exc:  # noqa: BLE001
                logger.warning("[serp] %s raised unexpectedly: %s", provider.name, exc)
                continue
            if results:
                logger.info("[serp] %s returned %d result(s)", provider.name, len(results))
                return results
        logger.info("[serp] all providers returned no results for %r", query)
        return []


def build_default_chain() -> SerpProviderChain:
    """Brave (if key) → SearXNG → DuckDuckGo."""
    providers: list[SerpProvider] = []
    if settings.brave_api_key:
        providers.append(BraveSerpProvider())
    providers.append(SearXNGSerpProvider())
    providers.append(DuckDuckGoSerpProvider())
    return SerpProviderChain(providers)


async def fetch_serp_data(query: str, location: Optional[str] = None) -> list[SerpResult]:
    """Top competitor snippets for *query*, or ``[]`` if none could be fetched."""
    if not query or not query.strip():
        return []
    chain = build_default_chain()
    return await chain.search(_compose_query(query, location), max_results=settings.serp_max_results)
